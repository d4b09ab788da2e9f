# model/evaluation.py
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Student(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = "Unknown"
    className: Optional[str] = Field(default=None, alias="class")
    rollNumber: Optional[str] = None


class Exam(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    date: Optional[str] = None
    totalMarks: Optional[float] = None


class EvaluationSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    totalScore: float = 0
    maxScore: float = 0
    percentage: float = 0
    grade: str = "N/A"
    overallFeedback: Optional[str] = None


class QuestionEvaluation(BaseModel):
    model_config = ConfigDict(extra="allow")

    questionId: str
    questionText: Optional[str] = None
    maxMarks: float = 0
    scoreAwarded: float = 0
    studentAnswer: Optional[str] = None
    referenceAnswer: Optional[str] = None
    subjectType: Optional[str] = None
    detailedAnalysis: Optional[dict[str, Any]] = None

    @field_validator("questionId", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> str:
        return str(v)


class EvaluationResult(BaseModel):
    """
    Full evaluator payload for one answer sheet.
    Unknown keys from the evaluator are preserved so the stored payload stays complete.
    """

    model_config = ConfigDict(extra="allow")

    student: Student
    exam: Exam
    evaluation: EvaluationSummary
    questions: list[QuestionEvaluation]
    tokensUsed: int = 0
    evaluationTime: Optional[str] = None
    method: Optional[str] = None

    @field_validator("questions")
    @classmethod
    def _non_empty(cls, v: list[QuestionEvaluation]) -> list[QuestionEvaluation]:
        if not v:
            raise ValueError("no questions found")
        return v

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
