# model/job.py
from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

JobStatus = Literal[
    "pending",
    "processing",
    "completed",
    "failed",
]

ItemStatus = Literal[
    "queued",
    "processing",
    "complete",
    "failed",
]

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
TERMINAL_ITEM_STATUSES: frozenset[str] = frozenset({"complete", "failed"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReferenceDocument(BaseModel):
    filename: str
    path: str
    pages: int = 0


class SourceDocument(BaseModel):
    filename: str
    path: str
    pages: int = 0


class EstimatedTime(BaseModel):
    model_config = ConfigDict(frozen=True)

    seconds: int
    minutes: int
    formatted: str


class ProcessingStrategy(BaseModel):
    """Planned concurrency and time estimate, fixed for the job's lifetime."""

    model_config = ConfigDict(frozen=True)

    tokensPerItem: int
    concurrency: int
    totalWindows: int
    estimatedTime: EstimatedTime
    strategy: str
    useBatching: bool = False


class Progress(BaseModel):
    total: int
    queued: int
    processing: int = 0
    completed: int = 0
    failed: int = 0
    percentage: int = 0


class ItemResult(BaseModel):
    """Condensed projection of a full evaluation; the payload lives in result storage."""

    studentName: str = "Unknown"
    score: float = 0
    maxScore: float = 0
    percentage: float = 0
    grade: str = "N/A"
    questionsEvaluated: int = 0


class ItemError(BaseModel):
    message: str
    type: str
    timestamp: datetime = Field(default_factory=utcnow)


class Item(BaseModel):
    id: str
    index: int
    source: SourceDocument
    status: ItemStatus = "queued"
    result: Optional[ItemResult] = None
    resultKey: Optional[str] = None
    error: Optional[ItemError] = None
    startedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    tokensUsed: int = 0


class Job(BaseModel):
    id: str
    status: JobStatus = "pending"
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)
    reference: ReferenceDocument
    strategy: ProcessingStrategy
    progress: Progress
    items: list[Item]

    def find_item(self, item_id: str) -> Optional[Item]:
        return next((i for i in self.items if i.id == item_id), None)

    def public_dump(self) -> dict:
        # File paths stay server-side
        return self.model_dump(
            mode="json",
            exclude={
                "reference": {"path"},
                "items": {"__all__": {"source": {"path"}}},
            },
        )
