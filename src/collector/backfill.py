"""Repair missing snapshot fields from previously persisted snapshots.

Fields are addressed through a finite registry of SnapshotField entries,
each pairing a document path (used for staleness markers) with a typed
getter and setter on the Snapshot model. Nothing walks dotted strings at
runtime.

Two lookups back everything here:

- most recent valid: newest-first over a bounded scan of recent snapshots,
- closest valid: nearest to a target time within a symmetric window,
  falling back to most recent valid when the window holds nothing usable.

The recent scan is loaded once per resolver, which lives for one cycle.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from collector.logging import get_logger
from collector.metrics.series import pct_change
from collector.models import OiCvdRecord, Snapshot, SymbolMetricSet
from collector.store.repository import SnapshotStore

logger = get_logger(__name__)

HOUR_MS = 3600 * 1000
DAY_MS = 24 * HOUR_MS


def is_present(value: Any) -> bool:
    """Models never hold NaN, so any non-None value counts (zero included)."""
    return value is not None


def _first_present(value: Any) -> bool:
    return isinstance(value, tuple) and value[0] is not None


@dataclass(frozen=True)
class SnapshotField:
    """One backfillable field of a Snapshot.

    ``get`` and ``set`` move the whole unit: for paired values (long/short
    with its source tag, macro price with its source tag) the getter
    returns a tuple and ``validator`` judges the primary element.
    """

    path: str
    get: Callable[[Snapshot], Any]
    set: Callable[[Snapshot, Any], None]
    validator: Callable[[Any], bool] = is_present

    def is_valid(self, snapshot: Snapshot) -> bool:
        return self.validator(self.get(snapshot))


# ──────────────────────────────────────────────
# Field registry
# ──────────────────────────────────────────────


def _set_dominance(s: Snapshot, v: Any) -> None:
    s.dominance_pct = v


def _set_dominance_delta(s: Snapshot, v: Any) -> None:
    s.dominance_delta_pct = v


def _set_macro_price(s: Snapshot, v: Any) -> None:
    s.macro_index.price, s.macro_index.source_tag = v


def _set_macro_pct(s: Snapshot, v: Any) -> None:
    s.macro_index.pct_24h = v


DOMINANCE_PCT = SnapshotField("dominancePct", lambda s: s.dominance_pct, _set_dominance)
DOMINANCE_DELTA_PCT = SnapshotField(
    "dominanceDeltaPct", lambda s: s.dominance_delta_pct, _set_dominance_delta
)
MACRO_INDEX_PRICE = SnapshotField(
    "macroIndex.price",
    lambda s: (s.macro_index.price, s.macro_index.source_tag),
    _set_macro_price,
    _first_present,
)
MACRO_INDEX_PCT = SnapshotField(
    "macroIndex.pct24h", lambda s: s.macro_index.pct_24h, _set_macro_pct
)


def _caps_field(key: str, attr: str) -> SnapshotField:
    return SnapshotField(
        f"aggregateCaps.{key}",
        lambda s: getattr(s.aggregate_caps, attr),
        lambda s, v: setattr(s.aggregate_caps, attr, v),
    )


AGGREGATE_CAPS_FIELDS: tuple[SnapshotField, ...] = tuple(
    _caps_field(key, attr)
    for key, attr in (
        ("total", "total"),
        ("totalExBiggest", "total_ex_biggest"),
        ("totalExTopTwo", "total_ex_top_two"),
        ("d1", "d1"),
        ("d2", "d2"),
        ("d3", "d3"),
    )
)

# document key -> SymbolMetricSet attribute
_SYMBOL_ATTRS: tuple[tuple[str, str], ...] = (
    ("price", "price"),
    ("pct24", "pct24"),
    ("pctPrev", "pct_prev"),
    ("vol24", "vol24"),
    ("volPrev", "vol_prev"),
    ("volDeltaPct", "vol_delta_pct"),
    ("rsi14", "rsi14"),
    ("rsi14Prev", "rsi14_prev"),
    ("fundingNow", "funding_now"),
    ("fundingPrev", "funding_prev"),
    ("fundingDelta", "funding_delta"),
    ("netFlowsUsdNow", "net_flows_usd_now"),
    ("netFlowsUsdPrev", "net_flows_usd_prev"),
    ("netFlowsUsdDiff", "net_flows_usd_diff"),
    ("sentimentValue", "sentiment_value"),
    ("sentimentClass", "sentiment_class"),
    ("sentimentTs", "sentiment_ts"),
)


def _metric_set(s: Snapshot, symbol: str) -> SymbolMetricSet:
    if symbol not in s.per_symbol:
        s.per_symbol[symbol] = SymbolMetricSet(symbol=symbol)
    return s.per_symbol[symbol]


def _symbol_get(symbol: str, attr: str) -> Callable[[Snapshot], Any]:
    def get(s: Snapshot) -> Any:
        metrics = s.per_symbol.get(symbol)
        return getattr(metrics, attr) if metrics is not None else None

    return get


def _symbol_set(symbol: str, attr: str) -> Callable[[Snapshot, Any], None]:
    def set_(s: Snapshot, v: Any) -> None:
        setattr(_metric_set(s, symbol), attr, v)

    return set_


def _long_short_get(symbol: str) -> Callable[[Snapshot], Any]:
    def get(s: Snapshot) -> Any:
        metrics = s.per_symbol.get(symbol)
        if metrics is None:
            return (None, None)
        return (metrics.long_short, metrics.long_short_source)

    return get


def _long_short_set(symbol: str) -> Callable[[Snapshot, Any], None]:
    def set_(s: Snapshot, v: Any) -> None:
        metrics = _metric_set(s, symbol)
        metrics.long_short, metrics.long_short_source = v

    return set_


def symbol_fields(symbol: str) -> list[SnapshotField]:
    """Backfillable fields of one symbol's metric set."""
    prefix = f"perSymbolMetrics.{symbol}"
    fields = [
        SnapshotField(f"{prefix}.{key}", _symbol_get(symbol, attr), _symbol_set(symbol, attr))
        for key, attr in _SYMBOL_ATTRS
    ]
    fields.append(
        SnapshotField(
            f"{prefix}.longShort",
            _long_short_get(symbol),
            _long_short_set(symbol),
            _first_present,
        )
    )
    return fields


def _oi_cvd_get(symbol: str, attr: str) -> Callable[[Snapshot], Any]:
    def get(s: Snapshot) -> Any:
        record = s.oi_cvd.get(symbol)
        return getattr(record, attr) if record is not None else None

    return get


def _oi_cvd_set(symbol: str, attr: str) -> Callable[[Snapshot, Any], None]:
    def set_(s: Snapshot, v: Any) -> None:
        if symbol not in s.oi_cvd:
            s.oi_cvd[symbol] = OiCvdRecord(
                symbol=symbol,
                period=s.aggregation_period,
                limit=s.aggregation_slice_count,
                window_label=s.leaderboard.window_label,
            )
        setattr(s.oi_cvd[symbol], attr, v)

    return set_


def oi_cvd_fields(symbol: str) -> list[SnapshotField]:
    return [
        SnapshotField(f"oiCvd.{symbol}.{key}", _oi_cvd_get(symbol, attr), _oi_cvd_set(symbol, attr))
        for key, attr in (("oiChangePct", "oi_change_pct"), ("cvd", "cvd"))
    ]


def required_fields(symbols: Iterable[str], oi_cvd_symbols: Iterable[str]) -> list[SnapshotField]:
    """Every field the end-of-cycle backfill pass must try to fill."""
    fields = [DOMINANCE_PCT, DOMINANCE_DELTA_PCT, MACRO_INDEX_PRICE, MACRO_INDEX_PCT]
    for symbol in symbols:
        fields.extend(symbol_fields(symbol))
    fields.extend(AGGREGATE_CAPS_FIELDS)
    for symbol in oi_cvd_symbols:
        fields.extend(oi_cvd_fields(symbol))
    return fields


# ──────────────────────────────────────────────
# Resolver
# ──────────────────────────────────────────────


class TemporalBackfillResolver:
    """Historical lookups for one cycle.

    Args:
        store: Snapshot store to read prior snapshots from.
        scan_limit: Snapshots examined by the most-recent-valid scan.
        window_ms: Half-width of the closest-to-target search window.
        window_scan_limit: Snapshots examined inside that window.
    """

    def __init__(
        self,
        store: SnapshotStore,
        scan_limit: int = 500,
        window_ms: int = 72 * HOUR_MS,
        window_scan_limit: int = 1000,
    ) -> None:
        self._store = store
        self._scan_limit = scan_limit
        self._window_ms = window_ms
        self._window_scan_limit = window_scan_limit
        self._recent: list[Snapshot] | None = None

    async def _recent_snapshots(self) -> list[Snapshot]:
        if self._recent is None:
            self._recent = await self._store.recent(self._scan_limit)
            logger.debug("backfill_recent_loaded", count=len(self._recent))
        return self._recent

    async def most_recent_valid(self, field: SnapshotField) -> Snapshot | None:
        for snapshot in await self._recent_snapshots():
            if field.is_valid(snapshot):
                return snapshot
        return None

    async def closest_valid(
        self,
        field: SnapshotField,
        target_ms: int,
        window_ms: int | None = None,
    ) -> Snapshot | None:
        """Valid snapshot nearest ``target_ms`` within +/- ``window_ms``.

        An earlier snapshot wins a distance tie.
        """
        window_ms = self._window_ms if window_ms is None else window_ms
        candidates = await self._store.between(
            target_ms - window_ms, target_ms + window_ms, self._window_scan_limit
        )
        best: Snapshot | None = None
        best_distance = 0
        for snapshot in candidates:
            if not field.is_valid(snapshot):
                continue
            distance = abs(snapshot.at - target_ms)
            if best is None or distance < best_distance:
                best, best_distance = snapshot, distance

        if best is not None:
            return best
        logger.debug("backfill_window_empty", path=field.path, target=target_ms)
        return await self.most_recent_valid(field)

    async def fill(self, snapshot: Snapshot, fields: Iterable[SnapshotField]) -> list[str]:
        """Substitute historical values for invalid fields and mark them stale.

        Returns the paths that were filled. Fields with no valid history stay
        as they are.
        """
        filled = []
        for field in fields:
            if field.is_valid(snapshot):
                continue
            source = await self.most_recent_valid(field)
            if source is None:
                continue
            field.set(snapshot, field.get(source))
            snapshot.mark_stale(field.path, source.at)
            filled.append(field.path)

        if filled:
            logger.info("backfill_applied", count=len(filled), paths=filled)
        return filled

    async def delta_vs_reference(
        self,
        field: SnapshotField,
        current: float | None,
        now_ms: int,
        lookback_ms: int = DAY_MS,
    ) -> float | None:
        """Percent change of ``current`` against the value ``lookback_ms`` ago.

        None when there is no current value, no reference snapshot, or the
        reference value is zero.
        """
        if current is None:
            return None
        reference = await self.closest_valid(field, now_ms - lookback_ms)
        if reference is None:
            logger.debug("backfill_reference_missing", path=field.path)
            return None

        value = field.get(reference)
        if isinstance(value, tuple):
            value = value[0]
        delta = pct_change(current, value)
        logger.debug(
            "backfill_reference_delta",
            path=field.path,
            reference_at=reference.at,
            reference=value,
            delta=delta,
        )
        return delta
