# core/batch_executor.py
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence
from core.entities import DocumentPreparer, Evaluator, PreparedPage
from model.api import ExecutionSummary
from model.job import Item, TERMINAL_JOB_STATUSES
from repository.job_repository import JobStore
from util import functions
from util.enums import ErrorMessage
from util.errors import EvaluationError, InvalidStateError, NotFoundError
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


@dataclass
class ItemOutcome:
    item_id: str
    ok: bool
    error: Optional[str] = None


class BatchExecutor:
    """
    Drives one job to a terminal state in bounded windows.

    - The reference is prepared once and shared read-only by every item task.
    - Each window marks its items processing, fans out one evaluation per item
      and waits for all of them before the next window starts, so at most
      `strategy.concurrency` evaluations are ever in flight for a job.
    - Item failures (including timeouts) are recorded on the item and never escape
      the window; only a reference preparation failure fails the job.
    """

    def __init__(
        self,
        store: JobStore,
        preparer: DocumentPreparer,
        evaluator: Evaluator,
        *,
        call_timeout: float,
        window_delay: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._preparer = preparer
        self._evaluator = evaluator
        self._call_timeout = call_timeout
        self._window_delay = window_delay
        self._sleep = sleep

    async def execute(self, job_id: str) -> ExecutionSummary:
        job = self._store.get_job(job_id)
        if job is None:
            raise NotFoundError.of(ErrorMessage.JOB_NOT_FOUND, job_id)
        if job.status == "failed":
            raise InvalidStateError.of(ErrorMessage.JOB_FAILED, job_id)

        logger.info(
            "exec.start job=%s items=%d conc=%d status=%s",
            job_id,
            job.progress.total,
            job.strategy.concurrency,
            job.status,
        )
        if job.status == "pending":
            await self._store.update_job_status(job_id, "processing")

        with timed(logger, "exec.job", job=job_id) as sw:
            try:
                reference_pages = await asyncio.to_thread(
                    self._preparer.prepare, job.reference
                )
            except Exception as e:
                logger.error("exec.reference.error job=%s", job_id, exc_info=True)
                await self._fail_run(job_id, e)
                raise
            logger.info("exec.reference.ok job=%s pages=%d", job_id, len(reference_pages))

            outcomes = await self._run_windows(
                job_id, reference_pages, job.strategy.concurrency
            )

        final = self._store.get_job(job_id)
        if final.status not in TERMINAL_JOB_STATUSES:
            await self._store.update_job_status(job_id, "completed")
            final = self._store.get_job(job_id)

        succeeded = sum(1 for o in outcomes if o.ok)
        summary = ExecutionSummary(
            jobId=job_id,
            status=final.status,
            processed=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            totalTimeSeconds=round(sw.elapsed, 2),
            progress=final.progress,
        )
        logger.info(
            "exec.done job=%s processed=%d ok=%d failed=%d secs=%.2f",
            job_id,
            summary.processed,
            summary.succeeded,
            summary.failed,
            summary.totalTimeSeconds,
        )
        return summary

    async def _fail_run(self, job_id: str, error: Exception) -> None:
        """
        A first run takes the job down with the reference. A retry run on a job that
        already finished fails only its requeued items, so they can be retried again.
        """
        job = self._store.get_job(job_id)
        if job.status not in TERMINAL_JOB_STATUSES:
            await self._store.update_job_status(job_id, "failed")
            return
        for item in self._store.get_pending_items(job_id):
            await self._store.mark_item_processing(job_id, item.id)
            await self._store.record_item_failure(job_id, item.id, error)

    async def _run_windows(
        self, job_id: str, reference_pages: Sequence[PreparedPage], concurrency: int
    ) -> List[ItemOutcome]:
        pending = self._store.get_pending_items(job_id)
        batches = list(functions.windows(pending, concurrency))
        outcomes: List[ItemOutcome] = []

        for n, window in enumerate(batches, start=1):
            with timed(logger, "exec.window", job=job_id, n=n, of=len(batches)):
                for item in window:
                    await self._store.mark_item_processing(job_id, item.id)
                settled = await asyncio.gather(
                    *(self._evaluate_item(job_id, reference_pages, item) for item in window),
                    return_exceptions=True,
                )
            for item, res in zip(window, settled):
                if isinstance(res, ItemOutcome):
                    outcomes.append(res)
                else:
                    # Recording the failure itself failed; the item stays processing
                    logger.error(
                        "exec.item.unsettled job=%s item=%s err=%r", job_id, item.id, res
                    )
                    outcomes.append(ItemOutcome(item.id, ok=False, error=repr(res)))

            if n < len(batches) and self._window_delay > 0:
                logger.info("exec.pause job=%s secs=%.1f", job_id, self._window_delay)
                await self._sleep(self._window_delay)
        return outcomes

    async def _evaluate_item(
        self, job_id: str, reference_pages: Sequence[PreparedPage], item: Item
    ) -> ItemOutcome:
        try:
            with timed(logger, "exec.item", job=job_id, item=item.id):
                item_pages = await asyncio.to_thread(self._preparer.prepare, item.source)
                try:
                    result = await asyncio.wait_for(
                        self._evaluator.evaluate(reference_pages, item_pages),
                        timeout=self._call_timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise EvaluationError(
                        f"Evaluation timeout after {self._call_timeout:g} seconds"
                    ) from e
                await self._store.record_item_success(job_id, item.id, result)
            return ItemOutcome(item.id, ok=True)
        except Exception as e:
            logger.error(
                "exec.item.error job=%s item=%s file=%s",
                job_id,
                item.id,
                item.source.filename,
                exc_info=True,
            )
            await self._store.record_item_failure(job_id, item.id, e)
            return ItemOutcome(item.id, ok=False, error=str(e))
