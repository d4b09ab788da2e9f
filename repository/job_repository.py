# repository/job_repository.py
import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Final, List, Optional, Sequence
from uuid import uuid4
from model.evaluation import EvaluationResult
from model.job import (
    Item,
    ItemError,
    ItemResult,
    ItemStatus,
    Job,
    JobStatus,
    ProcessingStrategy,
    Progress,
    ReferenceDocument,
    SourceDocument,
    TERMINAL_ITEM_STATUSES,
    utcnow,
)
from repository.result_repository import ResultRepository
from util import functions
from util.enums import ErrorMessage
from util.errors import InvalidStateError, NotFoundError, ValidationError
import logging

logger = logging.getLogger(__name__)

JOB_TRANSITIONS: Final[Dict[str, frozenset]] = {
    "pending": frozenset({"processing"}),
    "processing": frozenset({"completed", "failed"}),
}

# failed -> queued is the retry back-edge
ITEM_TRANSITIONS: Final[Dict[str, frozenset]] = {
    "queued": frozenset({"processing"}),
    "processing": frozenset({"complete", "failed"}),
    "failed": frozenset({"queued"}),
}

# item status -> Progress counter
COUNTERS: Final[Dict[str, str]] = {
    "queued": "queued",
    "processing": "processing",
    "complete": "completed",
    "failed": "failed",
}


class JobStore:
    """
    In-memory job table; the only mutation surface for jobs and items.

    Every mutation takes the job's lock, applies the status change and the paired
    counter update synchronously, then writes a best-effort snapshot before releasing.
    Readers get deep copies, never live references.
    """

    def __init__(self, results: ResultRepository) -> None:
        self._results = results
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @staticmethod
    def _new_job_id() -> str:
        return f"bulk_{int(time.time() * 1000)}_{uuid4().hex[:9]}"

    # ---------------- Core CRUD ----------------

    async def create_job(
        self,
        reference: ReferenceDocument,
        sources: Sequence[SourceDocument],
        strategy: ProcessingStrategy,
    ) -> Job:
        if not sources:
            raise ValidationError.of(ErrorMessage.ITEMS_REQUIRED)
        items = [
            Item(id=f"item_{i}_{uuid4().hex[:8]}", index=i, source=src)
            for i, src in enumerate(sources)
        ]
        job = Job(
            id=self._new_job_id(),
            reference=reference,
            strategy=strategy,
            progress=Progress(total=len(items), queued=len(items)),
            items=items,
        )
        self._jobs[job.id] = job
        self._locks[job.id] = asyncio.Lock()
        await self._persist(job)
        logger.info(
            "store.job.created job=%s items=%d conc=%d eta=%s",
            job.id,
            len(items),
            strategy.concurrency,
            strategy.estimatedTime.formatted,
        )
        return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id) if job_id else None
        return job.model_copy(deep=True) if job else None

    def get_pending_items(self, job_id: str) -> List[Item]:
        job = self._jobs.get(job_id)
        if job is None:
            return []
        return [i.model_copy(deep=True) for i in job.items if i.status == "queued"]

    def is_job_complete(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            return False
        p = job.progress
        return p.completed + p.failed == p.total

    # ---------------- Transitions ----------------

    async def update_job_status(self, job_id: str, status: JobStatus) -> None:
        async with self._mutating(job_id) as job:
            if status not in JOB_TRANSITIONS.get(job.status, frozenset()):
                raise InvalidStateError.of(
                    ErrorMessage.ILLEGAL_TRANSITION, f"job {job.status} -> {status}"
                )
            job.status = status
        logger.info("store.job.status job=%s status=%s", job_id, status)

    async def mark_item_processing(self, job_id: str, item_id: str) -> None:
        async with self._mutating(job_id) as job:
            self._transition(job, self._item(job, item_id), "processing")

    async def record_item_success(
        self, job_id: str, item_id: str, payload: EvaluationResult
    ) -> None:
        """
        Persist the full payload first; the item keeps only the condensed projection
        and the key needed to read the payload back.
        """
        item = self._item(self._job(job_id), item_id)
        if item.status != "processing":
            raise InvalidStateError.of(
                ErrorMessage.ILLEGAL_TRANSITION, f"item {item.status} -> complete"
            )
        key = await self._results.put(job_id, item_id, payload.to_payload())
        async with self._mutating(job_id) as job:
            item = self._item(job, item_id)
            self._transition(job, item, "complete")
            item.result = ItemResult(
                studentName=payload.student.name or "Unknown",
                score=payload.evaluation.totalScore,
                maxScore=payload.evaluation.maxScore,
                percentage=payload.evaluation.percentage,
                grade=payload.evaluation.grade,
                questionsEvaluated=len(payload.questions),
            )
            item.resultKey = key
            item.tokensUsed = payload.tokensUsed
        logger.info(
            "store.item.complete job=%s item=%s score=%s/%s grade=%s",
            job_id,
            item_id,
            payload.evaluation.totalScore,
            payload.evaluation.maxScore,
            payload.evaluation.grade,
        )

    async def record_item_failure(
        self, job_id: str, item_id: str, error: BaseException
    ) -> None:
        async with self._mutating(job_id) as job:
            item = self._item(job, item_id)
            self._transition(job, item, "failed")
            item.error = ItemError(
                message=str(error) or type(error).__name__,
                type=type(error).__name__,
            )
        logger.warning(
            "store.item.failed job=%s item=%s err=%s", job_id, item_id, type(error).__name__
        )

    async def reset_item_for_retry(self, job_id: str, item_id: str) -> None:
        async with self._mutating(job_id) as job:
            item = self._item(job, item_id)
            if item.status != "failed":
                raise InvalidStateError.of(ErrorMessage.ITEM_NOT_FAILED, item.status)
            self._transition(job, item, "queued")
            item.error = None
            item.result = None
            item.resultKey = None
            item.startedAt = None
            item.completedAt = None
        logger.info("store.item.requeued job=%s item=%s", job_id, item_id)

    # ---------------- Results ----------------

    async def get_item_result(self, job_id: str, item_id: str) -> Optional[dict]:
        """
        Full payload for a complete item; None for unknown ids and items still in flight.
        """
        job = self._jobs.get(job_id)
        item = job.find_item(item_id) if job else None
        if item is None or item.status != "complete" or not item.resultKey:
            return None
        return await self._results.get(job_id, item_id)

    # ---------------- Internals ----------------

    def _job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError.of(ErrorMessage.JOB_NOT_FOUND, job_id)
        return job

    @staticmethod
    def _item(job: Job, item_id: str) -> Item:
        item = job.find_item(item_id)
        if item is None:
            raise NotFoundError.of(ErrorMessage.ITEM_NOT_FOUND, item_id)
        return item

    @asynccontextmanager
    async def _mutating(self, job_id: str) -> AsyncIterator[Job]:
        job = self._job(job_id)
        async with self._locks[job_id]:
            yield job
            job.updatedAt = utcnow()
            await self._persist(job)

    @staticmethod
    def _transition(job: Job, item: Item, new: ItemStatus) -> None:
        old = item.status
        if new not in ITEM_TRANSITIONS.get(old, frozenset()):
            raise InvalidStateError.of(
                ErrorMessage.ILLEGAL_TRANSITION, f"item {old} -> {new}"
            )
        p = job.progress
        setattr(p, COUNTERS[old], getattr(p, COUNTERS[old]) - 1)
        setattr(p, COUNTERS[new], getattr(p, COUNTERS[new]) + 1)
        p.percentage = functions.round_half_up(100 * (p.completed + p.failed) / p.total)
        item.status = new

        now = utcnow()
        if new == "processing":
            item.startedAt = now
        elif new in TERMINAL_ITEM_STATUSES:
            item.completedAt = now

    async def _persist(self, job: Job) -> None:
        # Snapshots are for external inspection only; a failed write never fails the transition
        try:
            await self._results.put_snapshot(job.id, job.public_dump())
        except Exception:
            logger.warning("store.snapshot.error job=%s", job.id, exc_info=True)
