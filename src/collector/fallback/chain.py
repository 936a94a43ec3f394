"""Ordered fallback across competing sources for one logical metric.

A FallbackChain evaluates its sources strictly in the declared order and
returns the first value its validator accepts. A source that raises is
skipped, never fatal. When every source is exhausted the chain returns an
empty result, never a value that failed validation.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from collector.logging import get_logger
from collector.metrics.series import NEAR_ZERO
from collector.models import FundingReading, LongShort

logger = get_logger(__name__)

T = TypeVar("T")


class MetricSource(ABC, Generic[T]):
    """One way of obtaining a metric value for a symbol."""

    #: Recorded alongside the value so consumers know where it came from.
    tag: str

    @abstractmethod
    async def fetch(self, symbol: str) -> T | None:
        """Return a value, None for "no data", or raise on failure."""
        ...


class FunctionSource(MetricSource[T]):
    """Adapt a plain ``async fn(symbol)`` into a MetricSource."""

    def __init__(self, tag: str, fn: Callable[[str], Awaitable[T | None]]) -> None:
        self.tag = tag
        self._fn = fn

    async def fetch(self, symbol: str) -> T | None:
        return await self._fn(symbol)


@dataclass
class ChainResult(Generic[T]):
    value: T | None = None
    source: str | None = None

    @property
    def found(self) -> bool:
        return self.source is not None


class FallbackChain(Generic[T]):
    """Try ``sources`` in order until ``validator`` accepts a value.

    Args:
        name: Metric name for logging.
        sources: Sources in priority order.
        validator: Predicate a value must satisfy to be returned.
    """

    def __init__(
        self,
        name: str,
        sources: Sequence[MetricSource[T]],
        validator: Callable[[Any], bool],
    ) -> None:
        self.name = name
        self.sources = list(sources)
        self._validator = validator

    async def resolve(self, symbol: str = "") -> ChainResult[T]:
        for source in self.sources:
            try:
                value = await source.fetch(symbol)
            except Exception as e:
                logger.debug(
                    "fallback_source_failed",
                    metric=self.name,
                    symbol=symbol,
                    source=source.tag,
                    error=str(e),
                )
                continue

            if self._validator(value):
                logger.debug(
                    "fallback_resolved", metric=self.name, symbol=symbol, source=source.tag
                )
                return ChainResult(value=value, source=source.tag)

            logger.debug("fallback_rejected", metric=self.name, symbol=symbol, source=source.tag)

        logger.info("fallback_exhausted", metric=self.name, symbol=symbol, tried=len(self.sources))
        return ChainResult()


# ──────────────────────────────────────────────
# Validators
# ──────────────────────────────────────────────


def _finite(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def is_finite_number(value: Any) -> bool:
    """Any finite number, zero included."""
    return _finite(value)


def is_positive_number(value: Any) -> bool:
    return _finite(value) and value > 0


def is_dominance_valid(value: Any) -> bool:
    return _finite(value) and 0 < value <= 100


def is_funding_value_valid(value: Any) -> bool:
    """Zero funding is an error sentinel for some providers, not a reading."""
    return _finite(value) and abs(value) >= NEAR_ZERO


def is_funding_valid(value: Any) -> bool:
    return isinstance(value, FundingReading) and is_funding_value_valid(value.now)


def is_long_short_valid(value: Any) -> bool:
    return (
        isinstance(value, LongShort)
        and _finite(value.long_pct)
        and _finite(value.short_pct)
        and value.long_pct >= 0  # type: ignore[operator]
        and value.short_pct >= 0  # type: ignore[operator]
    )
