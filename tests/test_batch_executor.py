import pytest

from conftest import FakeEvaluator, FakePreparer
from core.batch_executor import BatchExecutor
from util.errors import InvalidStateError, NotFoundError, PreparationError

pytestmark = pytest.mark.asyncio


def _record_windows(store):
    """Wrap mark_item_processing so each pause between windows closes a window."""
    windows = [[]]
    original = store.mark_item_processing

    async def mark(job_id, item_id):
        windows[-1].append(item_id)
        await original(job_id, item_id)

    async def sleep(secs):
        windows.append([])

    store.mark_item_processing = mark
    return windows, sleep


async def test_five_items_run_in_windows_of_two(store, preparer, create_job):
    job = await create_job(5)
    windows, sleep = _record_windows(store)
    processing_seen = []
    evaluator = FakeEvaluator(
        fail_for={"sheet3.pdf"},
        probe=lambda name: processing_seen.append(store.get_job(job.id).progress.processing),
    )
    executor = BatchExecutor(
        store, preparer, evaluator, call_timeout=1.0, window_delay=2.0, sleep=sleep
    )

    summary = await executor.execute(job.id)

    ids = [i.id for i in job.items]
    assert windows == [ids[0:2], ids[2:4], ids[4:5]]
    assert max(processing_seen) <= job.strategy.concurrency
    assert evaluator.max_in_flight <= 2

    final = store.get_job(job.id)
    assert final.status == "completed"
    assert (final.progress.completed, final.progress.failed) == (4, 1)
    assert final.progress.total == 5
    assert final.progress.percentage == 100
    assert final.items[2].status == "failed"
    assert "sheet3.pdf" in final.items[2].error.message
    assert summary.processed == 5
    assert summary.succeeded == 4
    assert summary.failed == 1
    assert summary.status == "completed"


async def test_pause_only_between_windows(executor, create_job, sleeps):
    job = await create_job(5)
    await executor.execute(job.id)
    assert sleeps == [2.0, 2.0]


async def test_reference_prepared_once_per_run(executor, preparer, create_job):
    job = await create_job(4)
    await executor.execute(job.id)
    assert preparer.prepared.count("reference.pdf") == 1
    assert sorted(preparer.prepared) == sorted(
        ["reference.pdf", "sheet1.pdf", "sheet2.pdf", "sheet3.pdf", "sheet4.pdf"]
    )


async def test_all_items_failing_still_completes_job(store, preparer, create_job):
    job = await create_job(3)
    evaluator = FakeEvaluator(fail_for={"sheet1.pdf", "sheet2.pdf", "sheet3.pdf"})
    executor = BatchExecutor(store, preparer, evaluator, call_timeout=1.0, window_delay=0)

    await executor.execute(job.id)

    final = store.get_job(job.id)
    assert final.status == "completed"
    assert final.progress.failed == 3


async def test_item_preparation_failure_fails_only_that_item(store, create_job, evaluator):
    job = await create_job(3)
    preparer = FakePreparer(fail_on={"sheet2.pdf"})
    executor = BatchExecutor(store, preparer, evaluator, call_timeout=1.0, window_delay=0)

    await executor.execute(job.id)

    final = store.get_job(job.id)
    assert [i.status for i in final.items] == ["complete", "failed", "complete"]
    assert final.items[1].error.type == "PreparationError"
    assert "sheet2.pdf" not in evaluator.calls


async def test_timeout_is_scoped_to_one_item(store, preparer, create_job):
    job = await create_job(2)
    evaluator = FakeEvaluator(hang_for={"sheet1.pdf"})
    executor = BatchExecutor(store, preparer, evaluator, call_timeout=0.05, window_delay=0)

    await executor.execute(job.id)

    final = store.get_job(job.id)
    assert final.items[0].status == "failed"
    assert final.items[0].error.type == "EvaluationError"
    assert "timeout" in final.items[0].error.message.lower()
    assert final.items[1].status == "complete"
    assert final.status == "completed"


async def test_unexpected_exception_is_isolated(store, preparer, create_job):
    job = await create_job(2)

    class Exploding(FakeEvaluator):
        async def evaluate(self, reference_pages, item_pages):
            if item_pages[0].data == "sheet1.pdf":
                raise KeyError("questions")
            return await super().evaluate(reference_pages, item_pages)

    executor = BatchExecutor(store, preparer, Exploding(), call_timeout=1.0, window_delay=0)
    await executor.execute(job.id)

    final = store.get_job(job.id)
    assert [i.status for i in final.items] == ["failed", "complete"]
    assert final.items[0].error.type == "KeyError"


async def test_reference_failure_fails_job_without_touching_items(store, create_job, evaluator):
    job = await create_job(3)
    preparer = FakePreparer(fail_on={"reference.pdf"})
    executor = BatchExecutor(store, preparer, evaluator, call_timeout=1.0, window_delay=0)

    with pytest.raises(PreparationError):
        await executor.execute(job.id)

    final = store.get_job(job.id)
    assert final.status == "failed"
    assert final.progress.queued == final.progress.total == 3
    assert evaluator.calls == []

    with pytest.raises(InvalidStateError):
        await executor.execute(job.id)


async def test_unknown_job_raises_not_found(executor):
    with pytest.raises(NotFoundError):
        await executor.execute("bulk_missing")


async def test_rerun_processes_only_requeued_items(store, preparer, create_job):
    job = await create_job(3)
    evaluator = FakeEvaluator(fail_for={"sheet2.pdf"})
    executor = BatchExecutor(store, preparer, evaluator, call_timeout=1.0, window_delay=0)
    await executor.execute(job.id)
    failed_id = job.items[1].id

    await store.reset_item_for_retry(job.id, failed_id)
    evaluator.fail_for.clear()
    evaluator.calls.clear()
    summary = await executor.execute(job.id)

    assert evaluator.calls == ["sheet2.pdf"]
    assert summary.processed == 1
    final = store.get_job(job.id)
    assert final.status == "completed"
    assert [i.status for i in final.items] == ["complete"] * 3
    assert final.progress.failed == 0
    assert await store.get_item_result(job.id, failed_id) is not None


async def test_reference_failure_on_rerun_fails_requeued_items(store, preparer, create_job):
    job = await create_job(2)
    evaluator = FakeEvaluator(fail_for={"sheet2.pdf"})
    executor = BatchExecutor(store, preparer, evaluator, call_timeout=1.0, window_delay=0)
    await executor.execute(job.id)
    retried = job.items[1].id
    await store.reset_item_for_retry(job.id, retried)

    preparer.fail_on.add("reference.pdf")
    evaluator.calls.clear()
    with pytest.raises(PreparationError):
        await executor.execute(job.id)

    final = store.get_job(job.id)
    assert final.status == "completed"
    assert [i.status for i in final.items] == ["complete", "failed"]
    assert final.items[1].error.type == "PreparationError"
    assert (final.progress.queued, final.progress.failed) == (0, 1)
    assert final.progress.percentage == 100
    assert evaluator.calls == []

    # Still recoverable through the normal retry path
    preparer.fail_on.clear()
    evaluator.fail_for.clear()
    await store.reset_item_for_retry(job.id, retried)
    await executor.execute(job.id)
    assert store.get_job(job.id).items[1].status == "complete"
