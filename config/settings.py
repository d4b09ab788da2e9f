# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", validation_alias="REDIS_URL"
    )
    PERSISTENCE_TTL_SECONDS: int = Field(
        default=7 * 24 * 3600, validation_alias="PERSISTENCE_TTL_SECONDS"
    )
    RESULT_BACKEND: str = Field(default="file", validation_alias="RESULT_BACKEND")
    RESULTS_DIR: str = Field(
        default="results/bulk_jobs", validation_alias="RESULTS_DIR"
    )
    UPLOAD_DIR: str = Field(default="uploads", validation_alias="UPLOAD_DIR")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(
        default="http://localhost:3000", validation_alias="ALLOWED_ORIGIN"
    )
    RATE_LIMIT_ENABLED: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")
    RATE_LIMIT_TIMES: int = Field(default=30, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    MAX_FILE_MB: int = Field(default=50, validation_alias="MAX_FILE_MB")
    MAX_ITEMS: int = Field(default=99, validation_alias="MAX_ITEMS")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # Anthropic Settings
    ANTHROPIC_API_URL: str = Field(
        default="https://api.anthropic.com/v1/messages",
        validation_alias="ANTHROPIC_API_URL",
    )
    ANTHROPIC_API_KEY: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    ANTHROPIC_MODEL: str = Field(
        default="claude-sonnet-4-5", validation_alias="ANTHROPIC_MODEL"
    )
    ANTHROPIC_VERSION: str = Field(
        default="2023-06-01", validation_alias="ANTHROPIC_VERSION"
    )
    EVALUATION_MAX_TOKENS: int = Field(
        default=16000, validation_alias="EVALUATION_MAX_TOKENS"
    )

    # Capacity planning
    TOKEN_BUDGET: int = Field(default=500_000, validation_alias="TOKEN_BUDGET")
    SAFETY_FRACTION: float = Field(default=0.5, validation_alias="SAFETY_FRACTION")
    MIN_CONCURRENCY: int = Field(default=3, validation_alias="MIN_CONCURRENCY")
    MAX_CONCURRENCY: int = Field(default=24, validation_alias="MAX_CONCURRENCY")
    AVG_ITEM_LATENCY_SECONDS: int = Field(
        default=60, validation_alias="AVG_ITEM_LATENCY_SECONDS"
    )
    TOKENS_PER_PAGE: int = Field(default=500, validation_alias="TOKENS_PER_PAGE")
    RESPONSE_TOKENS: int = Field(default=3000, validation_alias="RESPONSE_TOKENS")
    DEFAULT_REFERENCE_PAGES: int = Field(
        default=1, validation_alias="DEFAULT_REFERENCE_PAGES"
    )
    DEFAULT_ITEM_PAGES: int = Field(default=7, validation_alias="DEFAULT_ITEM_PAGES")

    # Execution
    EVALUATION_TIMEOUT_SECONDS: float = Field(
        default=450.0, validation_alias="EVALUATION_TIMEOUT_SECONDS"
    )
    WINDOW_DELAY_SECONDS: float = Field(
        default=2.0, validation_alias="WINDOW_DELAY_SECONDS"
    )

    # Page rendering
    RENDER_SCALE: float = 1.8
    RENDER_MAX_WIDTH: int = 2500
    RENDER_JPEG_QUALITY: int = 88

    # Logging knobs
    LOGGER_NAME: str = "bulk-grader"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    # Prompts
    EVALUATION_SYSTEM_PROMPT: str = (
        "You are an experienced examiner. You receive the pages of a QUESTION PAPER "
        "followed by the pages of one student's ANSWER SHEET, all as images.\n"
        "\n"
        "TASK:\n"
        "- Read the question paper from the top of the first page to the bottom of the last page "
        "and list every question in every section, including MCQs and fill-in-the-blanks.\n"
        "- Find the student's answer to each question on the answer sheet and score it.\n"
        "- Record the student's name, class and roll number when they are written on the sheet.\n"
        "- Adapt the marking to the subject (show calculations for maths and physics, check "
        "equations for chemistry, terminology and diagrams for biology, facts and arguments for "
        "history, content and language for english).\n"
        "- Unattempted questions are included with 0 marks. Be generous with legible intent.\n"
        "\n"
        "QUESTION IDS:\n"
        '- Use the number the student wrote before each answer ("8." becomes "Q8"). Never '
        "renumber sequentially; gaps from skipped optional questions are expected.\n"
        "\n"
        "OUTPUT: JSON ONLY, no code fences, with this shape:\n"
        '{"student":{"name":"...","class":"...","rollNumber":"..."},'
        '"exam":{"name":"...","date":"...","totalMarks":0},'
        '"evaluation":{"totalScore":0,"maxScore":0,"percentage":0,'
        '"grade":"A+|A|B+|B|C|D|F","overallFeedback":"..."},'
        '"questions":[{"questionId":"Q1","questionText":"...","maxMarks":0,"scoreAwarded":0,'
        '"studentAnswer":"...","referenceAnswer":"...","subjectType":"...",'
        '"detailedAnalysis":{"correctElements":[],"errors":[],'
        '"partialCreditReasoning":"...","suggestions":"..."}}]}\n'
        "\n"
        "Before answering, check that the sum of maxMarks equals the exam total; if it does not, "
        "you missed questions.\n"
    )


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
