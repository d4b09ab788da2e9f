# util/errors.py
from fastapi import HTTPException, status
from util.enums import ErrorMessage


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)

    @property
    def message(self) -> str:
        return str(self.detail)

    def __str__(self) -> str:
        return self.message

    @classmethod
    def of(cls, error: ErrorMessage, detail: str | None = None) -> "AppError":
        message = error.value.message
        if detail:
            message = f"{message}: {detail}"
        return cls(message, error.value.http_status)


class ValidationError(AppError):
    """Bad submission shape. Caller's fault, never retried."""


class NotFoundError(AppError):
    """Unknown job, item or result."""


class InvalidStateError(AppError):
    """Illegal status transition, e.g. retrying an item that has not failed."""


class PreparationError(AppError):
    """Document could not be turned into page images."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorMessage.PREPARATION_FAILED.value.http_status)


class EvaluationError(AppError):
    """Remote evaluation failed, including timeouts. Always scoped to one item."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorMessage.EVALUATION_FAILED.value.http_status)
