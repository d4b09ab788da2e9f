# service/bulk_evaluation_service.py
import asyncio
import logging
from typing import Dict, Optional, Sequence
from config.settings import settings
from core.batch_executor import BatchExecutor
from core.capacity_planner import CapacityPlanner
from core.entities import DocumentPreparer
from model.api import CompletedItem, ExecutionSummary, JobResultsResponse, ResultsSummary
from model.job import Job, ReferenceDocument, SourceDocument
from repository.job_repository import JobStore
from repository.upload_repository import StoredUpload
from util.constants import GRADES
from util.enums import ErrorMessage
from util.errors import ValidationError

logger = logging.getLogger(__name__)


class BulkEvaluationService:
    def __init__(
        self,
        store: JobStore,
        planner: CapacityPlanner,
        executor: BatchExecutor,
        preparer: DocumentPreparer,
        max_items: int = settings.MAX_ITEMS,
    ) -> None:
        self._store = store
        self._planner = planner
        self._executor = executor
        self._preparer = preparer
        self._max_items = max_items
        self._runs: Dict[str, asyncio.Task] = {}

    def _pages(self, path: str, default: int) -> int:
        return self._preparer.page_count(path) or default

    async def submit_job(
        self, references: Sequence[StoredUpload], items: Sequence[StoredUpload]
    ) -> Job:
        """
        Validate the submission, plan capacity, create the job and start execution.
        Returns as soon as the job exists; progress is observed by polling.
        """
        if not references:
            raise ValidationError.of(ErrorMessage.REFERENCE_REQUIRED)
        if len(references) > 1:
            raise ValidationError.of(ErrorMessage.SINGLE_REFERENCE)
        if not items:
            raise ValidationError.of(ErrorMessage.ITEMS_REQUIRED)
        if len(items) > self._max_items:
            raise ValidationError.of(
                ErrorMessage.TOO_MANY_ITEMS, f"max {self._max_items}"
            )

        ref = references[0]
        reference = ReferenceDocument(
            filename=ref.filename,
            path=ref.path,
            pages=self._pages(ref.path, settings.DEFAULT_REFERENCE_PAGES),
        )
        sources = [
            SourceDocument(
                filename=u.filename,
                path=u.path,
                pages=self._pages(u.path, settings.DEFAULT_ITEM_PAGES),
            )
            for u in items
        ]
        # Size concurrency for the largest sheet in the batch
        strategy = self._planner.plan(
            reference.pages, max(s.pages for s in sources), len(sources)
        )
        job = await self._store.create_job(reference, sources, strategy)
        logger.info(
            "submit.ok job=%s reference=%s items=%d", job.id, ref.filename, len(sources)
        )
        self.start_execution(job.id)
        return job

    def start_execution(self, job_id: str) -> asyncio.Task:
        """
        Schedule an executor run and return its task. Runs for one job are chained,
        so a retry issued while a run is active waits for it instead of overlapping.
        """
        previous = self._runs.get(job_id)
        if previous is not None and not previous.done():
            task = asyncio.create_task(self._run_after(previous, job_id))
        else:
            task = asyncio.create_task(self._executor.execute(job_id))
        self._runs[job_id] = task
        task.add_done_callback(lambda t: self._on_run_done(job_id, t))
        return task

    async def _run_after(self, previous: asyncio.Task, job_id: str) -> ExecutionSummary:
        await asyncio.wait([previous])
        return await self._executor.execute(job_id)

    def _on_run_done(self, job_id: str, task: asyncio.Task) -> None:
        if self._runs.get(job_id) is task:
            del self._runs[job_id]
        if task.cancelled():
            logger.warning("run.cancelled job=%s", job_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "run.failed job=%s err=%s", job_id, type(exc).__name__, exc_info=exc
            )
            return
        summary = task.result()
        logger.info(
            "run.ok job=%s completed=%d failed=%d secs=%.2f",
            job_id,
            summary.progress.completed,
            summary.progress.failed,
            summary.totalTimeSeconds,
        )

    async def wait_for(self, job_id: str) -> Optional[ExecutionSummary]:
        """Await the active run for a job, if any. Failures are re-raised."""
        task = self._runs.get(job_id)
        if task is None:
            return None
        return await task

    def get_job_snapshot(self, job_id: str) -> Optional[Job]:
        return self._store.get_job(job_id)

    async def get_item_result(self, job_id: str, item_id: str) -> Optional[dict]:
        return await self._store.get_item_result(job_id, item_id)

    async def retry_item(self, job_id: str, item_id: str) -> None:
        """
        Requeue a failed item and start a run for it.
        Raises NotFoundError for unknown ids, InvalidStateError unless the item failed.
        """
        await self._store.reset_item_for_retry(job_id, item_id)
        logger.info("retry.accepted job=%s item=%s", job_id, item_id)
        self.start_execution(job_id)

    def get_results_summary(self, job_id: str) -> Optional[JobResultsResponse]:
        job = self._store.get_job(job_id)
        if job is None:
            return None

        results = [
            CompletedItem(
                itemId=i.id,
                filename=i.source.filename,
                studentName=i.result.studentName,
                score=i.result.score,
                maxScore=i.result.maxScore,
                percentage=i.result.percentage,
                grade=i.result.grade,
                questionsEvaluated=i.result.questionsEvaluated,
                completedAt=i.completedAt,
            )
            for i in job.items
            if i.status == "complete" and i.result is not None
        ]
        percentages = [r.percentage for r in results]
        distribution = {g: 0 for g in GRADES}
        for r in results:
            if r.grade in distribution:
                distribution[r.grade] += 1

        return JobResultsResponse(
            jobId=job.id,
            status=job.status,
            progress=job.progress,
            results=results,
            summary=ResultsSummary(
                totalStudents=len(results),
                averageScore=(
                    round(sum(percentages) / len(percentages), 2) if percentages else 0
                ),
                highestScore=max(percentages, default=0),
                lowestScore=min(percentages, default=0),
                gradeDistribution=distribution,
            ),
        )

