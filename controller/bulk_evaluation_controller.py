# controller/bulk_evaluation_controller.py
from typing import List
from fastapi import APIRouter, Depends, File, UploadFile, status
from model.api import JobResultsResponse, RetryItemResponse, SubmitJobResponse
from repository.upload_repository import UploadRepository
from service.bulk_evaluation_service import BulkEvaluationService
from util.constants import InternalURIs
from util.enums import ErrorMessage
from util.errors import NotFoundError
from controller.controller_dependencies import (
    enforce_max_request_size,
    get_bulk_service,
    get_upload_repository,
    rate_limits,
)

bulk_router = APIRouter(dependencies=rate_limits())


@bulk_router.post(
    InternalURIs.EVALUATE_BULK,
    response_model=SubmitJobResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_max_request_size)],
)
async def submit_job(
    referenceDocument: List[UploadFile] = File(default=[]),
    items: List[UploadFile] = File(default=[]),
    uploads: UploadRepository = Depends(get_upload_repository),
    service: BulkEvaluationService = Depends(get_bulk_service),
) -> SubmitJobResponse:
    references = [await uploads.save(f) for f in referenceDocument]
    sheets = [await uploads.save(f) for f in items]
    job = await service.submit_job(references, sheets)
    return SubmitJobResponse(
        jobId=job.id,
        totalItems=job.progress.total,
        status="processing",
        concurrency=job.strategy.concurrency,
        estimatedTime=job.strategy.estimatedTime,
        message=f"Bulk evaluation started. Processing {job.progress.total} answer sheets.",
    )


@bulk_router.get(InternalURIs.JOB)
async def get_job_snapshot(
    job_id: str, service: BulkEvaluationService = Depends(get_bulk_service)
) -> dict:
    job = service.get_job_snapshot(job_id)
    if job is None:
        raise NotFoundError.of(ErrorMessage.JOB_NOT_FOUND)
    return job.public_dump()


@bulk_router.get(InternalURIs.JOB_RESULTS, response_model=JobResultsResponse)
async def get_job_results(
    job_id: str, service: BulkEvaluationService = Depends(get_bulk_service)
) -> JobResultsResponse:
    results = service.get_results_summary(job_id)
    if results is None:
        raise NotFoundError.of(ErrorMessage.JOB_NOT_FOUND)
    return results


@bulk_router.get(InternalURIs.ITEM_RESULT)
async def get_item_result(
    job_id: str,
    item_id: str,
    service: BulkEvaluationService = Depends(get_bulk_service),
) -> dict:
    payload = await service.get_item_result(job_id, item_id)
    if payload is None:
        raise NotFoundError.of(ErrorMessage.RESULT_NOT_FOUND)
    return payload


@bulk_router.post(InternalURIs.RETRY_ITEM, response_model=RetryItemResponse)
async def retry_item(
    job_id: str,
    item_id: str,
    service: BulkEvaluationService = Depends(get_bulk_service),
) -> RetryItemResponse:
    await service.retry_item(job_id, item_id)
    return RetryItemResponse(
        message="Retry initiated successfully", jobId=job_id, itemId=item_id
    )
