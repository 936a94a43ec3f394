"""Pure numeric functions over market time series.

No I/O and no shared state: every function is deterministic given its
inputs. Values that cannot be computed come back as ``None`` rather than
NaN, so callers can persist results directly.

Series are always chronological (oldest first).
"""

import math
from collections.abc import Iterable, Sequence

from collector.models import CvdResult, FundingReading, LongShort, Verdict

#: Funding readings this close to zero are an upstream error sentinel, not data.
NEAR_ZERO = 1e-8

#: OI must move more than this many percent to count as up or down.
OI_THRESHOLD_PCT = 0.2

RSI_PERIOD = 14

_PERIOD_MINUTES = {
    "1m": 1,
    "3m": 3,
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "2h": 120,
    "4h": 240,
    "6h": 360,
    "12h": 720,
    "1d": 1440,
}


def finite_or_none(value: object) -> float | None:
    """Coerce to float; anything non-numeric or non-finite becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def round_or_none(value: float | None, digits: int) -> float | None:
    """Round a finite value, pass None through."""
    if value is None or not math.isfinite(value):
        return None
    return round(value, digits)


def is_near_zero(value: float | None) -> bool:
    """True for finite values indistinguishable from zero."""
    return value is not None and math.isfinite(value) and abs(value) < NEAR_ZERO


def mean(values: Sequence[float]) -> float | None:
    return sum(values) / len(values) if values else None


def rsi(closes: Sequence[float], period: int = RSI_PERIOD) -> float | None:
    """Wilder's relative strength index over a close series.

    Seeds average gain/loss with the first ``period`` deltas, then smooths
    the remainder with ``avg = (avg * (period - 1) + current) / period``.
    Needs at least ``period + 1`` points. Returns 100.0 when there are no
    losses at all, otherwise the value rounded to 2 decimals.
    """
    if len(closes) < period + 1:
        return None

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        delta = closes[i] - closes[i - 1]
        if delta > 0:
            gains += delta
        else:
            losses -= delta

    avg_gain = gains / period
    avg_loss = losses / period
    for i in range(period + 1, len(closes)):
        delta = closes[i] - closes[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(0.0, delta)) / period
        avg_loss = (avg_loss * (period - 1) + max(0.0, -delta)) / period

    if avg_loss == 0:
        return 100.0

    value = 100 - 100 / (1 + avg_gain / avg_loss)
    return round(value, 2) if math.isfinite(value) else None


def clean_funding_series(raw: Iterable[object]) -> list[float]:
    """Keep finite, non-near-zero funding readings in their original order."""
    series = []
    for item in raw:
        value = finite_or_none(item)
        if value is not None and not is_near_zero(value):
            series.append(value)
    return series


def funding_delta(series: Sequence[float]) -> FundingReading | None:
    """Average the last three readings and compare with the three before.

    With six or more readings all of ``now``, ``prev`` and ``delta`` are set;
    with three to five only ``now``; fewer than three gives None.
    """
    if len(series) < 3:
        return None

    now = mean(series[-3:])
    if len(series) < 6:
        return FundingReading(now=now)

    prev = mean(series[-6:-3])
    return FundingReading(now=now, prev=prev, delta=now - prev)  # type: ignore[operator]


def volume_delta_pct(volumes: Sequence[float]) -> float | None:
    """Percent change of the last volume against the one before it."""
    if len(volumes) < 2:
        return None
    prev, last = volumes[-2], volumes[-1]
    if not (math.isfinite(prev) and math.isfinite(last)) or prev <= 0:
        return None
    return (last - prev) / prev * 100


def oi_change_pct(values: Sequence[float]) -> float | None:
    """Percent change of open interest from the first to the last slice."""
    if not values:
        return None
    first, last = values[0], values[-1]
    if not math.isfinite(first) or first <= 0 or not math.isfinite(last):
        return None
    return (last - first) / first * 100


def cumulative_volume_delta(rows: Sequence[tuple[float, float]]) -> CvdResult | None:
    """Running sum of taker buy minus taker sell volume.

    ``rows`` are ``(buy_volume, sell_volume)`` pairs; non-finite rows are
    ignored. Returns None when nothing usable remains.
    """
    usable = [(b, s) for b, s in rows if math.isfinite(b) and math.isfinite(s)]
    if not usable:
        return None

    cvd = 0.0
    sum_buy = 0.0
    sum_sell = 0.0
    for buy, sell in usable:
        cvd += buy - sell
        sum_buy += buy
        sum_sell += sell

    last_buy, last_sell = usable[-1]
    return CvdResult(
        cvd=cvd,
        delta_last=last_buy - last_sell,
        sum_buy=sum_buy,
        sum_sell=sum_sell,
    )


def classify_verdict(oi_pct: float | None, cvd: float | None) -> Verdict:
    """Qualitative reading of combined open-interest and order-flow direction."""
    if oi_pct is None or cvd is None or not (math.isfinite(oi_pct) and math.isfinite(cvd)):
        return Verdict.NO_DATA

    oi_up = oi_pct > OI_THRESHOLD_PCT
    oi_down = oi_pct < -OI_THRESHOLD_PCT
    cvd_up = cvd > 0
    cvd_down = cvd < 0

    if oi_up and cvd_up:
        return Verdict.LONG_ACCUMULATION
    if oi_down and cvd_up:
        return Verdict.SHORT_COVERING
    if oi_up and cvd_down:
        return Verdict.ABSORPTION
    if oi_down and cvd_down:
        return Verdict.COOLING
    return Verdict.NEUTRAL


def derive_long_short_from_ratio(ratio: float | None) -> LongShort | None:
    """Split a longs/shorts ratio into percentages. Invalid for r <= 0."""
    if ratio is None or not math.isfinite(ratio) or ratio <= 0:
        return None
    long_pct = ratio / (1 + ratio) * 100
    return LongShort(
        long_pct=round(long_pct, 2),
        short_pct=round(100 - long_pct, 2),
        ratio=round(ratio, 2),
    )


def derive_long_short_from_counts(
    long_account: float | None,
    short_account: float | None,
    ratio: float | None = None,
) -> LongShort | None:
    """Percentages straight from account shares; ratio is secondary.

    Falls back to the ratio when the counts are unusable.
    """
    if (
        long_account is not None
        and short_account is not None
        and math.isfinite(long_account)
        and math.isfinite(short_account)
        and long_account + short_account > 0
    ):
        total = long_account + short_account
        if ratio is None or not math.isfinite(ratio):
            ratio = long_account / short_account if short_account > 0 else None
        return LongShort(
            long_pct=round(long_account / total * 100, 2),
            short_pct=round(short_account / total * 100, 2),
            ratio=round(ratio, 2) if ratio is not None else None,
        )
    return derive_long_short_from_ratio(ratio)


def pct_change(now: float | None, prev: float | None) -> float | None:
    """Percent change, None when either side is missing or prev is zero."""
    if now is None or prev is None or not (math.isfinite(now) and math.isfinite(prev)):
        return None
    if prev == 0:
        return None
    return (now - prev) / prev * 100


def reconstruct_previous(now: float, pct_24h: float) -> float | None:
    """Invert a reported 24h percent change to recover yesterday's value."""
    divisor = 1 + pct_24h / 100
    if divisor == 0:
        return None
    return now / divisor


def window_label(period: str, slices: int) -> str:
    """Human label for ``slices`` bars of ``period``: 5m x 6 -> "30m"."""
    total = _PERIOD_MINUTES.get(period, 0) * (slices or 0)
    if not total:
        return f"{slices}x{period}"
    if total % 60 == 0:
        return f"{total // 60}h"
    return f"{total}m"
