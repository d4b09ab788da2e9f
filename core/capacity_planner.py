# core/capacity_planner.py
import math
from dataclasses import dataclass
from typing import Protocol
from config.settings import settings
from model.job import EstimatedTime, ProcessingStrategy
from util import functions
from util.constants import STRATEGY_LABEL
import logging

logger = logging.getLogger(__name__)


class CostEstimator(Protocol):
    def estimate(self, reference_pages: int, item_pages: int) -> int:
        """Token cost of evaluating one item against the reference."""
        ...


@dataclass(frozen=True)
class TokenCostEstimator:
    """
    prompt + one image cost per page (reference and item) + reserved response allowance.
    """

    prompt_tokens: int
    tokens_per_page: int = 500
    response_tokens: int = 3000

    @classmethod
    def from_settings(cls) -> "TokenCostEstimator":
        return cls(
            prompt_tokens=functions.approx_tokens(settings.EVALUATION_SYSTEM_PROMPT),
            tokens_per_page=settings.TOKENS_PER_PAGE,
            response_tokens=settings.RESPONSE_TOKENS,
        )

    def estimate(self, reference_pages: int, item_pages: int) -> int:
        image_tokens = (reference_pages + item_pages) * self.tokens_per_page
        return math.ceil(self.prompt_tokens + image_tokens + self.response_tokens)


class CapacityPlanner:
    """
    Turns a per-item cost estimate into a concurrency level and an advisory time estimate.
    Pure: no I/O, no state beyond its configuration.
    """

    def __init__(
        self,
        estimator: CostEstimator,
        *,
        token_budget: int = 500_000,
        safety_fraction: float = 0.5,
        min_concurrency: int = 3,
        max_concurrency: int = 24,
        avg_item_latency_seconds: int = 60,
    ) -> None:
        if not 0 < safety_fraction < 1:
            raise ValueError("safety_fraction must be in (0, 1)")
        if min_concurrency < 1 or min_concurrency > max_concurrency:
            raise ValueError("need 1 <= min_concurrency <= max_concurrency")
        self._estimator = estimator
        self._budget = token_budget
        self._safety = safety_fraction
        self._min = min_concurrency
        self._max = max_concurrency
        self._latency = avg_item_latency_seconds

    @classmethod
    def from_settings(cls) -> "CapacityPlanner":
        return cls(
            TokenCostEstimator.from_settings(),
            token_budget=settings.TOKEN_BUDGET,
            safety_fraction=settings.SAFETY_FRACTION,
            min_concurrency=settings.MIN_CONCURRENCY,
            max_concurrency=settings.MAX_CONCURRENCY,
            avg_item_latency_seconds=settings.AVG_ITEM_LATENCY_SECONDS,
        )

    def concurrency_for(self, cost_per_item: int) -> int:
        # A single item above budget still runs at min concurrency; throttling is
        # handled as an ordinary per-item failure.
        fits = math.floor(self._safety * self._budget / max(1, cost_per_item))
        return max(self._min, min(self._max, fits))

    def plan(
        self, reference_pages: int, item_pages: int, item_count: int
    ) -> ProcessingStrategy:
        cost = self._estimator.estimate(reference_pages, item_pages)
        concurrency = self.concurrency_for(cost)
        total_windows = math.ceil(item_count / concurrency)
        seconds = total_windows * self._latency

        strategy = ProcessingStrategy(
            tokensPerItem=cost,
            concurrency=concurrency,
            totalWindows=total_windows,
            estimatedTime=EstimatedTime(
                seconds=seconds,
                minutes=math.ceil(seconds / 60),
                formatted=functions.format_duration(seconds),
            ),
            strategy=STRATEGY_LABEL,
        )
        logger.info(
            "plan.ok tokens=%d conc=%d windows=%d eta=%ds",
            cost,
            concurrency,
            total_windows,
            seconds,
        )
        return strategy
