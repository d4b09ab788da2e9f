# core/entities.py
from dataclasses import dataclass
from typing import Protocol, Sequence
from model.evaluation import EvaluationResult


@dataclass(frozen=True)
class PreparedPage:
    """
    One rendered page, ready to be sent to the evaluator as an image block.
    """

    page: int  # 1-based page index
    media_type: str
    data: str  # base64 encoded image bytes


class Document(Protocol):
    filename: str
    path: str


class DocumentPreparer(Protocol):
    def prepare(self, document: Document) -> list[PreparedPage]: ...

    def page_count(self, path: str) -> int | None: ...


class Evaluator(Protocol):
    async def evaluate(
        self,
        reference_pages: Sequence[PreparedPage],
        item_pages: Sequence[PreparedPage],
    ) -> EvaluationResult: ...
