"""Aggregate market capitalization deltas.

Providers report today's capitalization and a 24h percent change but not
yesterday's value. Yesterday is reconstructed as ``now / (1 + pct / 100)``
for the whole market and for the two largest assets, then the totals
excluding those assets are compared day over day.
"""

from collector.metrics.series import pct_change, reconstruct_previous, round_or_none
from collector.models import AggregateCaps


def compute_aggregate_caps(
    total_cap: float,
    total_pct_24h: float,
    biggest_cap: float,
    biggest_pct_24h: float,
    second_cap: float,
    second_pct_24h: float,
) -> AggregateCaps:
    """Build today's totals and their day-over-day percent changes.

    Deltas are rounded to 4 decimals; a delta whose reconstructed
    reference is missing or zero stays None.
    """
    total_prev = reconstruct_previous(total_cap, total_pct_24h)
    biggest_prev = reconstruct_previous(biggest_cap, biggest_pct_24h)
    second_prev = reconstruct_previous(second_cap, second_pct_24h)

    total_ex_biggest = total_cap - biggest_cap
    total_ex_top_two = total_cap - biggest_cap - second_cap

    ex_biggest_prev = None
    ex_top_two_prev = None
    if total_prev is not None and biggest_prev is not None:
        ex_biggest_prev = total_prev - biggest_prev
        if second_prev is not None:
            ex_top_two_prev = total_prev - biggest_prev - second_prev

    return AggregateCaps(
        total=total_cap,
        total_ex_biggest=total_ex_biggest,
        total_ex_top_two=total_ex_top_two,
        d1=round_or_none(pct_change(total_cap, total_prev), 4),
        d2=round_or_none(pct_change(total_ex_biggest, ex_biggest_prev), 4),
        d3=round_or_none(pct_change(total_ex_top_two, ex_top_two_prev), 4),
    )
