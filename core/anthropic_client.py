# core/anthropic_client.py
import json
import time
from typing import Any, Dict, List, Optional, Sequence
import httpx
from pydantic import ValidationError as ModelValidationError
from config.settings import settings
from core.entities import PreparedPage
from model.evaluation import EvaluationResult
from util.errors import EvaluationError
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

METHOD = "vision-api-complete"
REQUIRED_KEYS = ("student", "exam", "evaluation", "questions")


def _image_block(page: PreparedPage) -> Dict[str, Any]:
    return {
        "type": "image",
        "source": {"type": "base64", "media_type": page.media_type, "data": page.data},
    }


def _user_content(
    reference_pages: Sequence[PreparedPage], item_pages: Sequence[PreparedPage]
) -> List[Dict[str, Any]]:
    """
    Question paper pages first, then the answer sheet, each group introduced by a label.
    """
    content: List[Dict[str, Any]] = [
        {"type": "text", "text": f"QUESTION PAPER ({len(reference_pages)} pages):"}
    ]
    content.extend(_image_block(p) for p in reference_pages)
    content.append({"type": "text", "text": f"ANSWER SHEET ({len(item_pages)} pages):"})
    content.extend(_image_block(p) for p in item_pages)
    content.append({"type": "text", "text": "Evaluate every question. Return JSON only."})
    return content


def _response_text(data: Dict[str, Any]) -> str:
    content = data.get("content") or []
    parts = [
        node.get("text") or ""
        for node in content
        if isinstance(node, dict) and node.get("type") == "text"
    ]
    return "".join(parts)


def _strip_fences(raw: str) -> str:
    raw = (raw or "").strip()
    if raw.startswith("```"):
        raw = raw.strip("`")
        if raw.startswith("json"):
            raw = raw[4:]
    return raw.strip()


def parse_evaluation(data: Dict[str, Any]) -> EvaluationResult:
    """
    Turn a messages-API response body into an EvaluationResult.
    Raises EvaluationError for unparsable or structurally incomplete replies.
    """
    raw = _strip_fences(_response_text(data))
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise EvaluationError(f"Evaluator returned invalid JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise EvaluationError("Evaluator returned a non-object JSON value")

    for key in REQUIRED_KEYS:
        if key not in parsed:
            raise EvaluationError(f'Invalid evaluation result: missing key "{key}"')
    if not isinstance(parsed["questions"], list):
        raise EvaluationError('Invalid evaluation result: "questions" is not an array')

    try:
        return EvaluationResult.model_validate(parsed)
    except ModelValidationError as e:
        raise EvaluationError(f"Invalid evaluation result: {e.error_count()} errors") from e


class AnthropicEvaluator:
    """
    Scores one answer sheet against the question paper in a single messages call.
    """

    def __init__(
        self,
        *,
        api_key: str = settings.ANTHROPIC_API_KEY,
        api_url: str = settings.ANTHROPIC_API_URL,
        model: str = settings.ANTHROPIC_MODEL,
        version: str = settings.ANTHROPIC_VERSION,
        max_tokens: int = settings.EVALUATION_MAX_TOKENS,
        http_timeout: float = settings.EVALUATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._url = api_url
        self._model = model
        self._version = version
        self._max_tokens = max_tokens
        self._timeout = httpx.Timeout(http_timeout, connect=10.0)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": self._version,
            "content-type": "application/json",
        }

    async def _post_json(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            r = await client.post(self._url, headers=self._headers(), json=payload)
            r.raise_for_status()
            return r.json()

    async def evaluate(
        self,
        reference_pages: Sequence[PreparedPage],
        item_pages: Sequence[PreparedPage],
    ) -> EvaluationResult:
        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": settings.EVALUATION_SYSTEM_PROMPT,
            "messages": [
                {"role": "user", "content": _user_content(reference_pages, item_pages)}
            ],
            "temperature": 0.0,
        }
        t0 = time.perf_counter()
        try:
            with timed(
                logger,
                "ai.evaluate",
                model=self._model,
                ref_pages=len(reference_pages),
                pages=len(item_pages),
            ):
                data = await self._post_json(payload)
        except httpx.HTTPStatusError as e:
            logger.warning("ai.evaluate.bad_status status=%d", e.response.status_code)
            raise EvaluationError(
                f"Evaluation service returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise EvaluationError("Evaluation service timed out") from e
        except httpx.RequestError as e:
            logger.warning("ai.evaluate.request_error err=%s", type(e).__name__)
            raise EvaluationError(f"Evaluation request failed: {type(e).__name__}") from e
        except ValueError as e:
            raise EvaluationError("Evaluation service returned a non-JSON body") from e

        result = parse_evaluation(data)
        usage = data.get("usage") or {}
        result.tokensUsed = int(usage.get("input_tokens", 0)) + int(
            usage.get("output_tokens", 0)
        )
        result.evaluationTime = f"{time.perf_counter() - t0:.2f} seconds"
        result.method = METHOD
        logger.info(
            "ai.evaluate.result score=%s/%s grade=%s questions=%d tokens=%d",
            result.evaluation.totalScore,
            result.evaluation.maxScore,
            result.evaluation.grade,
            len(result.questions),
            result.tokensUsed,
        )
        return result
