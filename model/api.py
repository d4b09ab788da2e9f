# model/api.py
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel
from model.job import EstimatedTime, JobStatus, Progress


class SubmitJobResponse(BaseModel):
    success: bool = True
    jobId: str
    totalItems: int
    status: JobStatus
    concurrency: int
    estimatedTime: EstimatedTime
    message: str


class RetryItemResponse(BaseModel):
    message: str
    jobId: str
    itemId: str
    status: Literal["queued"] = "queued"


class CompletedItem(BaseModel):
    itemId: str
    filename: str
    studentName: str
    score: float
    maxScore: float
    percentage: float
    grade: str
    questionsEvaluated: int
    completedAt: Optional[datetime] = None


class ResultsSummary(BaseModel):
    totalStudents: int
    averageScore: float
    highestScore: float
    lowestScore: float
    gradeDistribution: dict[str, int]


class JobResultsResponse(BaseModel):
    jobId: str
    status: JobStatus
    progress: Progress
    results: list[CompletedItem]
    summary: ResultsSummary


class ExecutionSummary(BaseModel):
    jobId: str
    status: JobStatus
    processed: int
    succeeded: int
    failed: int
    totalTimeSeconds: float
    progress: Progress
