"""Ordered fallback chains: one capability, many competing sources per metric."""

from collector.fallback.chain import (
    ChainResult,
    FallbackChain,
    FunctionSource,
    MetricSource,
    is_dominance_valid,
    is_finite_number,
    is_funding_valid,
    is_funding_value_valid,
    is_long_short_valid,
    is_positive_number,
)
from collector.fallback.sources import (
    dominance_chain,
    funding_chain,
    long_short_chain,
    macro_index_chain,
)

__all__ = [
    "ChainResult",
    "FallbackChain",
    "FunctionSource",
    "MetricSource",
    "dominance_chain",
    "funding_chain",
    "is_dominance_valid",
    "is_finite_number",
    "is_funding_valid",
    "is_funding_value_valid",
    "is_long_short_valid",
    "is_positive_number",
    "long_short_chain",
    "macro_index_chain",
]
