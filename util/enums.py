# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class ResultBackend(str, Enum):
    REDIS = "redis"
    FILE = "file"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    REFERENCE_REQUIRED = ErrorInfo(
        "Reference document is required", status.HTTP_400_BAD_REQUEST
    )
    SINGLE_REFERENCE = ErrorInfo(
        "Only one reference document allowed", status.HTTP_400_BAD_REQUEST
    )
    ITEMS_REQUIRED = ErrorInfo(
        "At least one answer sheet is required", status.HTTP_400_BAD_REQUEST
    )
    TOO_MANY_ITEMS = ErrorInfo("Too many answer sheets", status.HTTP_400_BAD_REQUEST)
    JOB_NOT_FOUND = ErrorInfo("Job not found", status.HTTP_404_NOT_FOUND)
    ITEM_NOT_FOUND = ErrorInfo("Item not found", status.HTTP_404_NOT_FOUND)
    RESULT_NOT_FOUND = ErrorInfo(
        "Result not found or not yet available", status.HTTP_404_NOT_FOUND
    )
    ITEM_NOT_FAILED = ErrorInfo("Item is not in failed status", status.HTTP_409_CONFLICT)
    ILLEGAL_TRANSITION = ErrorInfo("Illegal status transition", status.HTTP_409_CONFLICT)
    JOB_FAILED = ErrorInfo("Job has failed and cannot run", status.HTTP_409_CONFLICT)
    PREPARATION_FAILED = ErrorInfo(
        "Document could not be prepared", status.HTTP_422_UNPROCESSABLE_ENTITY
    )
    EVALUATION_FAILED = ErrorInfo("Evaluation failed", status.HTTP_502_BAD_GATEWAY)
