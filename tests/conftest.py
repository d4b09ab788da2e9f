"""Shared fixtures: in-process fakes for page rendering and evaluation."""

import asyncio
import os
import tempfile

_SCRATCH = tempfile.mkdtemp(prefix="bulk-grader-tests-")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RESULT_BACKEND", "file")
os.environ.setdefault("RESULTS_DIR", os.path.join(_SCRATCH, "results"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_SCRATCH, "uploads"))

import pytest

from core.batch_executor import BatchExecutor
from core.capacity_planner import CapacityPlanner, TokenCostEstimator
from core.entities import PreparedPage
from model.evaluation import EvaluationResult
from model.job import ReferenceDocument, SourceDocument
from repository.job_repository import JobStore
from repository.result_repository import FileResultRepository
from util.errors import EvaluationError, PreparationError


def make_result(score: float = 8, max_score: float = 10, grade: str = "A", name: str = "Asha") -> EvaluationResult:
    return EvaluationResult.model_validate(
        {
            "student": {"name": name, "class": "10B", "rollNumber": "42"},
            "exam": {"name": "Midterm", "totalMarks": max_score},
            "evaluation": {
                "totalScore": score,
                "maxScore": max_score,
                "percentage": round(100 * score / max_score),
                "grade": grade,
                "overallFeedback": "Solid work.",
            },
            "questions": [
                {"questionId": "Q1", "maxMarks": max_score, "scoreAwarded": score},
            ],
            "tokensUsed": 1234,
        }
    )


class FakePreparer:
    """Each page carries the source filename so the evaluator can tell items apart."""

    def __init__(self, pages: int = 2, fail_on=()):
        self.pages = pages
        self.fail_on = set(fail_on)
        self.prepared = []

    def prepare(self, document):
        self.prepared.append(document.filename)
        if document.filename in self.fail_on:
            raise PreparationError(f"cannot parse {document.filename}")
        return [
            PreparedPage(page=i + 1, media_type="image/jpeg", data=document.filename)
            for i in range(self.pages)
        ]

    def page_count(self, path):
        return self.pages


class FakeEvaluator:
    def __init__(self, fail_for=(), hang_for=(), delay: float = 0.0, probe=None):
        self.fail_for = set(fail_for)
        self.hang_for = set(hang_for)
        self.delay = delay
        self.probe = probe
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def evaluate(self, reference_pages, item_pages):
        name = item_pages[0].data
        self.calls.append(name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.probe is not None:
                self.probe(name)
            await asyncio.sleep(self.delay)
            if name in self.hang_for:
                await asyncio.sleep(3600)
            if name in self.fail_for:
                raise EvaluationError(f"evaluator rejected {name}")
            return make_result()
        finally:
            self.in_flight -= 1


@pytest.fixture
def results_repo(tmp_path):
    return FileResultRepository(root=str(tmp_path / "results"))


@pytest.fixture
def store(results_repo):
    return JobStore(results_repo)


@pytest.fixture
def preparer():
    return FakePreparer()


@pytest.fixture
def evaluator():
    return FakeEvaluator()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def executor(store, preparer, evaluator, sleeps):
    async def _sleep(secs):
        sleeps.append(secs)

    return BatchExecutor(
        store,
        preparer,
        evaluator,
        call_timeout=1.0,
        window_delay=2.0,
        sleep=_sleep,
    )


@pytest.fixture
def planner():
    # Pinned to concurrency 2 regardless of cost
    return CapacityPlanner(
        TokenCostEstimator(prompt_tokens=1000),
        token_budget=500_000,
        safety_fraction=0.5,
        min_concurrency=2,
        max_concurrency=2,
    )


@pytest.fixture
def create_job(store, planner):
    async def _create(n: int = 5, reference: str = "reference.pdf"):
        sources = [
            SourceDocument(filename=f"sheet{i}.pdf", path=f"/uploads/sheet{i}.pdf", pages=3)
            for i in range(1, n + 1)
        ]
        ref = ReferenceDocument(filename=reference, path=f"/uploads/{reference}", pages=1)
        return await store.create_job(ref, sources, planner.plan(1, 3, n))

    return _create
