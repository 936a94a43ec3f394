"""Pure series analytics: momentum, funding, volume, open interest, order flow."""

from collector.metrics.caps import compute_aggregate_caps
from collector.metrics.series import (
    classify_verdict,
    cumulative_volume_delta,
    derive_long_short_from_counts,
    derive_long_short_from_ratio,
    funding_delta,
    oi_change_pct,
    rsi,
    volume_delta_pct,
    window_label,
)

__all__ = [
    "classify_verdict",
    "compute_aggregate_caps",
    "cumulative_volume_delta",
    "derive_long_short_from_counts",
    "derive_long_short_from_ratio",
    "funding_delta",
    "oi_change_pct",
    "rsi",
    "volume_delta_pct",
    "window_label",
]
