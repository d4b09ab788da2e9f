# util/functions.py
import math
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def format_duration(seconds: int) -> str:
    """
    - "45 seconds" below a minute.
    - "1 minute" / "3 minutes" on whole minutes, "3m 20s" otherwise.
    """
    if seconds < 60:
        return f"{seconds} seconds"
    minutes, rest = divmod(seconds, 60)
    if rest:
        return f"{minutes}m {rest}s"
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


def approx_tokens(text: str) -> int:
    # ~4 characters per token for English prose
    return math.ceil(len(text) / 4)


def windows(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Consecutive slices of `items` of length `size` (the last may be shorter)."""
    step = max(1, size)
    for start in range(0, len(items), step):
        yield items[start : start + step]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
