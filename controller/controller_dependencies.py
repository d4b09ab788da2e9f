# controller/controller_dependencies.py
from typing import List
from fastapi import Depends, HTTPException, Request
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from core.anthropic_client import AnthropicEvaluator
from core.batch_executor import BatchExecutor
from core.capacity_planner import CapacityPlanner
from core.page_renderer import PdfPageRenderer
from repository.job_repository import JobStore
from repository.result_repository import (
    FileResultRepository,
    RedisResultRepository,
    ResultRepository,
)
from repository.upload_repository import UploadRepository
from service.bulk_evaluation_service import BulkEvaluationService
from util.enums import ResultBackend


def build_result_repository() -> ResultRepository:
    if settings.RESULT_BACKEND == ResultBackend.REDIS:
        return RedisResultRepository()
    return FileResultRepository()


def build_bulk_service() -> BulkEvaluationService:
    """
    Wire the process-wide object graph. Called once from the app lifespan;
    the resulting service (and its JobStore) lives as long as the process.
    """
    _store = JobStore(build_result_repository())
    _renderer = PdfPageRenderer()
    _executor = BatchExecutor(
        _store,
        _renderer,
        AnthropicEvaluator(),
        call_timeout=settings.EVALUATION_TIMEOUT_SECONDS,
        window_delay=settings.WINDOW_DELAY_SECONDS,
    )
    return BulkEvaluationService(
        _store, CapacityPlanner.from_settings(), _executor, _renderer
    )


def get_bulk_service(request: Request) -> BulkEvaluationService:
    return request.app.state.bulk_service


def get_upload_repository(request: Request) -> UploadRepository:
    return request.app.state.uploads


def rate_limits() -> List:
    if not settings.RATE_LIMIT_ENABLED:
        return []
    return [
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]


async def enforce_max_request_size(request: Request) -> None:
    # Fast pre-check via Content-Length; per-file caps are enforced while saving
    max_bytes = settings.MAX_FILE_MB * 1024 * 1024 * (settings.MAX_ITEMS + 1)
    cl = request.headers.get("content-length")
    if cl is None:
        return
    if not cl.strip().isdigit():
        raise HTTPException(
            status_code=400,
            detail={"ok": False, "error": "invalid_content_length"},
        )
    if int(cl) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail={
                "ok": False,
                "error": "request_too_large",
                "maxMb": max_bytes // (1024 * 1024),
            },
        )
