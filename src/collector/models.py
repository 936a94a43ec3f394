"""Shared data models for the market snapshot collector.

Numeric fields are ``float | None``: a value is either finite or absent.
NaN never appears in a model or in a persisted document.

Each persisted model knows how to render itself as a document
(camelCase keys, JSON-safe) and how to read one back. Readers are lenient:
older documents with missing keys load with ``None`` in their place.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _int(value: Any) -> int | None:
    number = _num(value)
    return int(number) if number is not None else None


class Verdict(str, Enum):
    """Qualitative open-interest / order-flow reading."""

    LONG_ACCUMULATION = "long accumulation"
    SHORT_COVERING = "short covering"
    ABSORPTION = "absorption"
    COOLING = "cooling"
    NEUTRAL = "neutral"
    NO_DATA = "no data"

    @property
    def emoji(self) -> str:
        return _VERDICT_EMOJI[self]

    def to_document(self) -> dict[str, str]:
        return {"emoji": self.emoji, "label": self.value}

    @classmethod
    def from_document(cls, doc: Any) -> "Verdict":
        label = doc.get("label") if isinstance(doc, dict) else doc
        try:
            return cls(label)
        except ValueError:
            return cls.NO_DATA


_VERDICT_EMOJI = {
    Verdict.LONG_ACCUMULATION: "🟢",
    Verdict.SHORT_COVERING: "🟡",
    Verdict.ABSORPTION: "🟠",
    Verdict.COOLING: "⚪️",
    Verdict.NEUTRAL: "⚪️",
    Verdict.NO_DATA: "⚪️",
}


@dataclass
class FundingReading:
    """Averaged funding rate now, the window before, and their difference."""

    now: float | None
    prev: float | None = None
    delta: float | None = None


@dataclass
class LongShort:
    """Long/short positioning as percentages plus the raw ratio."""

    long_pct: float | None
    short_pct: float | None
    ratio: float | None

    def to_document(self) -> dict[str, Any]:
        return {"longPct": self.long_pct, "shortPct": self.short_pct, "ratio": self.ratio}

    @classmethod
    def from_document(cls, doc: Any) -> "LongShort | None":
        if not isinstance(doc, dict):
            return None
        return cls(
            long_pct=_num(doc.get("longPct")),
            short_pct=_num(doc.get("shortPct")),
            ratio=_num(doc.get("ratio")),
        )


@dataclass
class CvdResult:
    """Cumulative volume delta over a window of taker volume slices."""

    cvd: float
    delta_last: float
    sum_buy: float
    sum_sell: float


@dataclass
class SentimentReading:
    value: float | None = None
    classification: str | None = None
    timestamp_ms: int | None = None


@dataclass
class SymbolMetricSet:
    """Per-symbol metrics gathered in one cycle."""

    symbol: str
    price: float | None = None
    pct24: float | None = None
    pct_prev: float | None = None
    vol24: float | None = None
    vol_prev: float | None = None
    vol_delta_pct: float | None = None
    rsi14: float | None = None
    rsi14_prev: float | None = None
    funding_now: float | None = None
    funding_prev: float | None = None
    funding_delta: float | None = None
    net_flows_usd_now: float | None = None
    net_flows_usd_prev: float | None = None
    net_flows_usd_diff: float | None = None
    long_short: LongShort | None = None
    long_short_source: str | None = None
    sentiment_value: float | None = None
    sentiment_class: str | None = None
    sentiment_ts: int | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "pct24": self.pct24,
            "pctPrev": self.pct_prev,
            "vol24": self.vol24,
            "volPrev": self.vol_prev,
            "volDeltaPct": self.vol_delta_pct,
            "rsi14": self.rsi14,
            "rsi14Prev": self.rsi14_prev,
            "fundingNow": self.funding_now,
            "fundingPrev": self.funding_prev,
            "fundingDelta": self.funding_delta,
            "netFlowsUsdNow": self.net_flows_usd_now,
            "netFlowsUsdPrev": self.net_flows_usd_prev,
            "netFlowsUsdDiff": self.net_flows_usd_diff,
            "longShort": self.long_short.to_document() if self.long_short else None,
            "longShortSource": self.long_short_source,
            "sentimentValue": self.sentiment_value,
            "sentimentClass": self.sentiment_class,
            "sentimentTs": self.sentiment_ts,
        }

    @classmethod
    def from_document(cls, symbol: str, doc: dict[str, Any]) -> "SymbolMetricSet":
        return cls(
            symbol=doc.get("symbol") or symbol,
            price=_num(doc.get("price")),
            pct24=_num(doc.get("pct24")),
            pct_prev=_num(doc.get("pctPrev")),
            vol24=_num(doc.get("vol24")),
            vol_prev=_num(doc.get("volPrev")),
            vol_delta_pct=_num(doc.get("volDeltaPct")),
            rsi14=_num(doc.get("rsi14")),
            rsi14_prev=_num(doc.get("rsi14Prev")),
            funding_now=_num(doc.get("fundingNow")),
            funding_prev=_num(doc.get("fundingPrev")),
            funding_delta=_num(doc.get("fundingDelta")),
            net_flows_usd_now=_num(doc.get("netFlowsUsdNow")),
            net_flows_usd_prev=_num(doc.get("netFlowsUsdPrev")),
            net_flows_usd_diff=_num(doc.get("netFlowsUsdDiff")),
            long_short=LongShort.from_document(doc.get("longShort")),
            long_short_source=doc.get("longShortSource"),
            sentiment_value=_num(doc.get("sentimentValue")),
            sentiment_class=doc.get("sentimentClass"),
            sentiment_ts=_int(doc.get("sentimentTs")),
        )


@dataclass
class OiCvdRecord:
    """Open-interest change and order-flow balance for one symbol."""

    symbol: str
    period: str
    limit: int
    window_label: str
    oi_change_pct: float | None = None
    cvd: float | None = None
    delta_last: float | None = None
    cvd_usd: float | None = None
    verdict: Verdict = Verdict.NO_DATA

    def to_document(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "period": self.period,
            "limit": self.limit,
            "windowLabel": self.window_label,
            "oiChangePct": self.oi_change_pct,
            "cvd": self.cvd,
            "deltaLast": self.delta_last,
            "cvdUsd": self.cvd_usd,
            "verdict": self.verdict.to_document(),
        }

    @classmethod
    def from_document(cls, symbol: str, doc: dict[str, Any]) -> "OiCvdRecord":
        return cls(
            symbol=doc.get("symbol") or symbol,
            period=doc.get("period") or "",
            limit=_int(doc.get("limit")) or 0,
            window_label=doc.get("windowLabel") or "",
            oi_change_pct=_num(doc.get("oiChangePct")),
            cvd=_num(doc.get("cvd")),
            delta_last=_num(doc.get("deltaLast")),
            cvd_usd=_num(doc.get("cvdUsd")),
            verdict=Verdict.from_document(doc.get("verdict")),
        )


@dataclass
class LeaderboardEntry:
    symbol: str
    oi_change_pct: float | None
    cvd_usd: float | None
    price: float | None
    verdict: Verdict
    score: float

    def to_document(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "oiChangePct": self.oi_change_pct,
            "cvdUsd": self.cvd_usd,
            "price": self.price,
            "verdict": self.verdict.to_document(),
            "score": self.score,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "LeaderboardEntry":
        return cls(
            symbol=doc.get("symbol", ""),
            oi_change_pct=_num(doc.get("oiChangePct")),
            cvd_usd=_num(doc.get("cvdUsd")),
            price=_num(doc.get("price")),
            verdict=Verdict.from_document(doc.get("verdict")),
            score=_num(doc.get("score")) or 0.0,
        )


@dataclass
class Leaderboard:
    """Top symbols by combined OI/CVD signal strength.

    ``scanned`` and ``skipped`` describe the scan itself and are not persisted.
    """

    window_label: str
    entries: list[LeaderboardEntry] = field(default_factory=list)
    scanned: int = 0
    skipped: int = 0

    def to_document(self) -> dict[str, Any]:
        return {
            "windowLabel": self.window_label,
            "topEntries": [e.to_document() for e in self.entries],
        }

    @classmethod
    def from_document(cls, doc: Any) -> "Leaderboard":
        if not isinstance(doc, dict):
            return cls(window_label="")
        return cls(
            window_label=doc.get("windowLabel") or "",
            entries=[LeaderboardEntry.from_document(e) for e in doc.get("topEntries") or []],
        )


@dataclass
class MacroIndex:
    price: float | None = None
    pct_24h: float | None = None
    source_tag: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {"price": self.price, "pct24h": self.pct_24h, "sourceTag": self.source_tag}

    @classmethod
    def from_document(cls, doc: Any) -> "MacroIndex":
        if not isinstance(doc, dict):
            return cls()
        return cls(
            price=_num(doc.get("price")),
            pct_24h=_num(doc.get("pct24h")),
            source_tag=doc.get("sourceTag"),
        )


@dataclass
class AggregateCaps:
    """Total market capitalization, excluding the largest and two largest assets.

    d1..d3 are today-vs-yesterday percent changes of the three totals.
    """

    total: float | None = None
    total_ex_biggest: float | None = None
    total_ex_top_two: float | None = None
    d1: float | None = None
    d2: float | None = None
    d3: float | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "totalExBiggest": self.total_ex_biggest,
            "totalExTopTwo": self.total_ex_top_two,
            "d1": self.d1,
            "d2": self.d2,
            "d3": self.d3,
        }

    @classmethod
    def from_document(cls, doc: Any) -> "AggregateCaps":
        if not isinstance(doc, dict):
            return cls()
        return cls(
            total=_num(doc.get("total")),
            total_ex_biggest=_num(doc.get("totalExBiggest")),
            total_ex_top_two=_num(doc.get("totalExTopTwo")),
            d1=_num(doc.get("d1")),
            d2=_num(doc.get("d2")),
            d3=_num(doc.get("d3")),
        )


@dataclass
class StalenessMarker:
    """A field's value came from the snapshot taken at ``source_timestamp``."""

    source_timestamp: int

    def to_document(self) -> dict[str, int]:
        return {"sourceTimestamp": self.source_timestamp}


@dataclass
class Snapshot:
    """One aggregation cycle's result; immutable once persisted."""

    at: int  # Unix milliseconds
    iso_local_timestamp: str
    aggregation_period: str
    aggregation_slice_count: int
    expire_at: int  # Unix milliseconds
    per_symbol: dict[str, SymbolMetricSet] = field(default_factory=dict)
    oi_cvd: dict[str, OiCvdRecord] = field(default_factory=dict)
    leaderboard: Leaderboard = field(default_factory=lambda: Leaderboard(window_label=""))
    dominance_pct: float | None = None
    dominance_delta_pct: float | None = None
    macro_index: MacroIndex = field(default_factory=MacroIndex)
    aggregate_caps: AggregateCaps = field(default_factory=AggregateCaps)
    staleness: dict[str, StalenessMarker] = field(default_factory=dict)

    def mark_stale(self, path: str, source_timestamp: int) -> None:
        self.staleness[path] = StalenessMarker(source_timestamp=source_timestamp)

    def to_document(self) -> dict[str, Any]:
        return {
            "at": self.at,
            "isoLocalTimestamp": self.iso_local_timestamp,
            "perSymbolMetrics": {s: m.to_document() for s, m in self.per_symbol.items()},
            "oiCvd": {s: r.to_document() for s, r in self.oi_cvd.items()},
            "leaderboard": self.leaderboard.to_document(),
            "aggregationPeriod": self.aggregation_period,
            "aggregationSliceCount": self.aggregation_slice_count,
            "dominancePct": self.dominance_pct,
            "dominanceDeltaPct": self.dominance_delta_pct,
            "macroIndex": self.macro_index.to_document(),
            "aggregateCaps": self.aggregate_caps.to_document(),
            "expireAt": self.expire_at,
            "staleness": {p: m.to_document() for p, m in self.staleness.items()},
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Snapshot":
        per_symbol = doc.get("perSymbolMetrics") or {}
        oi_cvd = doc.get("oiCvd") or {}
        staleness = doc.get("staleness") or {}
        return cls(
            at=_int(doc.get("at")) or 0,
            iso_local_timestamp=doc.get("isoLocalTimestamp") or "",
            aggregation_period=doc.get("aggregationPeriod") or "",
            aggregation_slice_count=_int(doc.get("aggregationSliceCount")) or 0,
            expire_at=_int(doc.get("expireAt")) or 0,
            per_symbol={
                s: SymbolMetricSet.from_document(s, m)
                for s, m in per_symbol.items()
                if isinstance(m, dict)
            },
            oi_cvd={
                s: OiCvdRecord.from_document(s, r)
                for s, r in oi_cvd.items()
                if isinstance(r, dict)
            },
            leaderboard=Leaderboard.from_document(doc.get("leaderboard")),
            dominance_pct=_num(doc.get("dominancePct")),
            dominance_delta_pct=_num(doc.get("dominanceDeltaPct")),
            macro_index=MacroIndex.from_document(doc.get("macroIndex")),
            aggregate_caps=AggregateCaps.from_document(doc.get("aggregateCaps")),
            staleness={
                p: StalenessMarker(source_timestamp=int(m["sourceTimestamp"]))
                for p, m in staleness.items()
                if isinstance(m, dict) and _num(m.get("sourceTimestamp")) is not None
            },
        )
