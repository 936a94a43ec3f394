"""Exchange reserves dataset (DefiLlama CEX transparency) and net-flow deltas.

The dataset comes in several shapes depending on mirror and vintage, so
points are normalised to ``(ts, native, usd)`` before use. Output is
optional: a cycle without reserves data simply leaves net flows null.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from collector.exceptions import ProviderError
from collector.logging import get_logger
from collector.metrics.series import finite_or_none
from collector.providers.http import HttpClient

logger = get_logger(__name__)

RESERVES_URLS: tuple[str, ...] = (
    "https://api.llama.fi/cex/reserves/{slug}",
    "https://preview.dl.llama.fi/cex/{slug}",
)

_TS_KEYS = ("timestamp", "t", "time", "date", "x")
_NATIVE_KEYS = ("balance", "amount", "qty", "tokenBalance", "asset", "value_native", "native", "n")
_USD_KEYS = (
    "usd", "usd_value", "value_usd", "valueUSD", "totalUSD", "y", "value", "usdValue", "sumUSD",
)
_SERIES_KEYS = ("tokens", "assets", "data", "series")

_DAY_MS = 24 * 3600 * 1000


@dataclass
class ReservePoint:
    ts: int
    native: float | None
    usd: float | None


@dataclass
class NetFlows:
    now_usd: float | None
    prev_usd: float | None

    @property
    def diff_usd(self) -> float | None:
        if self.now_usd is None or self.prev_usd is None:
            return None
        return self.now_usd - self.prev_usd


def _pick(point: dict[str, Any], keys: Iterable[str]) -> float | None:
    for key in keys:
        value = finite_or_none(point.get(key))
        if value is not None:
            return value
    return None


def normalize_point(point: Any) -> ReservePoint | None:
    if not isinstance(point, dict):
        return None
    ts = _pick(point, _TS_KEYS)
    if ts is None:
        return None
    native = _pick(point, _NATIVE_KEYS)
    usd = _pick(point, _USD_KEYS)
    if native is None and usd is None:
        return None
    return ReservePoint(ts=int(ts), native=native, usd=usd)


def read_series_for_symbol(data: Any, symbol: str) -> list[ReservePoint]:
    """All points for ``symbol`` from any known dataset layout, oldest first."""
    if not isinstance(data, dict):
        return []
    symbol = symbol.upper()
    raw: list[Any] = []
    for key in _SERIES_KEYS:
        if isinstance(data.get(key), list):
            raw.extend(data[key])
    for chart in data.get("charts") or []:
        if not isinstance(chart, dict):
            continue
        name = str(chart.get("symbol") or chart.get("token") or chart.get("name") or "")
        if name.upper() == symbol and isinstance(chart.get("data"), list):
            raw.extend(chart["data"])

    points = [p for p in (normalize_point(r) for r in raw) if p is not None]
    return sorted(points, key=lambda p: p.ts)


def _nearest(points: list[ReservePoint], target: int) -> ReservePoint:
    return min(points, key=lambda p: abs(p.ts - target))


def net_flows_two_windows(points: list[ReservePoint]) -> NetFlows:
    """USD reserve change over the last 24h and over the 24h before that."""
    if not points:
        return NetFlows(now_usd=None, prev_usd=None)
    last = points[-1]
    p1 = _nearest(points, last.ts - _DAY_MS)
    p2 = _nearest(points, last.ts - 2 * _DAY_MS)

    now = last.usd - p1.usd if last.usd is not None and p1.usd is not None else None
    prev = p1.usd - p2.usd if p1.usd is not None and p2.usd is not None else None
    return NetFlows(now_usd=now, prev_usd=prev)


class ReservesClient:
    def __init__(self, http: HttpClient, urls: tuple[str, ...] = RESERVES_URLS) -> None:
        self._http = http
        self._urls = urls

    async def dataset(self, slug: str) -> Any:
        """First mirror that returns a body; raises ProviderError if none do."""
        for template in self._urls:
            url = template.format(slug=slug)
            try:
                data = await self._http.get_json(url, params={"_t": int(time.time() * 1000)})
            except ProviderError as e:
                logger.debug("reserves_mirror_failed", url=url, error=str(e))
                continue
            if data:
                return data
        raise ProviderError(f"no reserves dataset for {slug}")
