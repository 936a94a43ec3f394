"""Primary derivatives exchange: Binance USD-M futures public endpoints.

All calls go through RotatingEndpointClient across the load-balanced
``fapi`` hosts. Methods raise ProviderError (or AllBasesExhausted) on
failure; parsing helpers return None for bodies without usable values.

Symbols are exchange ids (``BTCUSDT``); use futures_symbol() to map an asset.
"""

from dataclasses import dataclass
from typing import Any

from collector.exceptions import ProviderError
from collector.logging import get_logger
from collector.metrics.series import (
    clean_funding_series,
    cumulative_volume_delta,
    derive_long_short_from_counts,
    derive_long_short_from_ratio,
    finite_or_none,
    is_near_zero,
    oi_change_pct,
)
from collector.models import CvdResult, LongShort
from collector.providers.http import HttpClient
from collector.providers.retry import with_retry
from collector.providers.rotating import RotatingEndpointClient

logger = get_logger(__name__)

BINANCE_FAPI_BASES: tuple[str, ...] = (
    "https://fapi.binance.com",
    "https://fapi1.binance.com",
    "https://fapi2.binance.com",
    "https://fapi3.binance.com",
)

#: Public website mirror of the funding history, independent of the fapi hosts.
BINANCE_WWW_FUNDING_URL = "https://www.binance.com/futures/data/fundingRate"

QUOTE_ASSET = "USDT"


def futures_symbol(asset: str) -> str:
    """BTC -> BTCUSDT."""
    asset = asset.upper()
    return asset if asset.endswith(QUOTE_ASSET) else f"{asset}{QUOTE_ASSET}"


def base_asset(symbol: str) -> str:
    """BTCUSDT -> BTC."""
    return symbol[: -len(QUOTE_ASSET)] if symbol.endswith(QUOTE_ASSET) else symbol


def _is_list(data: Any) -> bool:
    return isinstance(data, list)


@dataclass
class Ticker24h:
    price: float | None
    pct24: float | None
    vol24: float | None  # quote volume


class BinanceFuturesClient:
    """Typed accessors over the Binance futures REST API.

    Args:
        rotating: Mirror router used for every fapi call.
        http: Direct client for the www funding mirror.
        bases: fapi hosts in preference order.
        attempts: Whole-call attempts for open interest and taker volume.
        retry_pause: Seconds between those attempts.
    """

    def __init__(
        self,
        rotating: RotatingEndpointClient,
        http: HttpClient,
        bases: tuple[str, ...] = BINANCE_FAPI_BASES,
        attempts: int = 2,
        retry_pause: float = 0.5,
    ) -> None:
        self._rotating = rotating
        self._http = http
        self._bases = bases
        self._attempts = attempts
        self._retry_pause = retry_pause

    async def _get(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self._rotating.call(self._bases, path, params, **kwargs)

    # ──────────────────────────────────────────────
    # Tickers and metadata
    # ──────────────────────────────────────────────

    async def ticker_24h(self, symbol: str) -> Ticker24h:
        data = await self._get("/fapi/v1/ticker/24hr", {"symbol": symbol})
        if not isinstance(data, dict):
            raise ProviderError(f"unexpected ticker body for {symbol}")
        return Ticker24h(
            price=finite_or_none(data.get("lastPrice")),
            pct24=finite_or_none(data.get("priceChangePercent")),
            vol24=finite_or_none(data.get("quoteVolume")),
        )

    async def all_tickers(self) -> dict[str, dict[str, Any]]:
        """24h tickers for every futures symbol, keyed by symbol."""
        data = await self._get("/fapi/v1/ticker/24hr", accept=_is_list)
        tickers = {str(t.get("symbol")): t for t in data if isinstance(t, dict)}
        logger.debug("binance_all_tickers", count=len(tickers))
        return tickers

    async def usdt_perpetuals(self) -> list[str]:
        """Symbols of actively trading USDT-quoted perpetual contracts."""
        data = await self._get("/fapi/v1/exchangeInfo")
        symbols = data.get("symbols") if isinstance(data, dict) else None
        if not isinstance(symbols, list):
            raise ProviderError("exchangeInfo body has no symbols list")
        return [
            str(s["symbol"])
            for s in symbols
            if isinstance(s, dict)
            and s.get("status") == "TRADING"
            and s.get("quoteAsset") == QUOTE_ASSET
            and s.get("contractType") == "PERPETUAL"
        ]

    # ──────────────────────────────────────────────
    # Funding
    # ──────────────────────────────────────────────

    async def funding_series(self, symbol: str, limit: int = 24) -> list[float]:
        """Chronological non-zero funding readings from the fapi hosts."""
        data = await self._get(
            "/fapi/v1/fundingRate", {"symbol": symbol, "limit": limit}, accept=_is_list
        )
        return clean_funding_series(row.get("fundingRate") for row in data if isinstance(row, dict))

    async def funding_series_www(self, symbol: str, limit: int = 48) -> list[float]:
        """Same series from the public website mirror."""
        data = await self._http.get_json(
            BINANCE_WWW_FUNDING_URL, params={"symbol": symbol, "limit": limit}
        )
        if not isinstance(data, list):
            raise ProviderError("www funding body is not a list")
        return clean_funding_series(row.get("fundingRate") for row in data if isinstance(row, dict))

    async def premium_index_funding(self, symbol: str) -> float | None:
        """Last settled funding rate from the premium index, None if zero."""
        data = await self._get("/fapi/v1/premiumIndex", {"symbol": symbol})
        value = finite_or_none(data.get("lastFundingRate")) if isinstance(data, dict) else None
        return None if value is None or is_near_zero(value) else value

    # ──────────────────────────────────────────────
    # Long/short positioning
    # ──────────────────────────────────────────────

    async def _last_row(self, path: str, symbol: str, period: str, limit: int) -> dict | None:
        data = await self._get(
            path, {"symbol": symbol, "period": period, "limit": limit}, accept=_is_list
        )
        rows = [row for row in data if isinstance(row, dict)]
        return rows[-1] if rows else None

    async def global_long_short(
        self, symbol: str, period: str, limit: int = 30
    ) -> LongShort | None:
        """All-account ratio; prefers raw account shares over the ratio."""
        last = await self._last_row(
            "/futures/data/globalLongShortAccountRatio", symbol, period, limit
        )
        if last is None:
            return None
        return derive_long_short_from_counts(
            finite_or_none(last.get("longAccount")),
            finite_or_none(last.get("shortAccount")),
            finite_or_none(last.get("longShortRatio")),
        )

    async def top_accounts_long_short(
        self, symbol: str, period: str = "4h", limit: int = 30
    ) -> LongShort | None:
        last = await self._last_row(
            "/futures/data/topLongShortAccountRatio", symbol, period, limit
        )
        if last is None:
            return None
        return derive_long_short_from_ratio(finite_or_none(last.get("longShortRatio")))

    async def top_positions_long_short(
        self, symbol: str, period: str = "4h", limit: int = 30
    ) -> LongShort | None:
        last = await self._last_row(
            "/futures/data/topLongShortPositionRatio", symbol, period, limit
        )
        if last is None:
            return None
        return derive_long_short_from_ratio(finite_or_none(last.get("longShortRatio")))

    # ──────────────────────────────────────────────
    # Open interest and taker flow
    # ──────────────────────────────────────────────

    async def _window_rows(self, path: str, symbol: str, period: str, limit: int) -> list[dict]:
        params = {"symbol": symbol, "period": period, "limit": limit}
        data = await with_retry(
            lambda: self._get(path, params, accept=_is_list),
            attempts=self._attempts,
            pause=self._retry_pause,
            label=path,
        )
        return [row for row in data if isinstance(row, dict)]

    async def open_interest_change(self, symbol: str, period: str, limit: int) -> float | None:
        """Percent change of open-interest value across the window."""
        rows = await self._window_rows("/futures/data/openInterestHist", symbol, period, limit)
        values = [
            v
            for v in (finite_or_none(r.get("sumOpenInterestValue")) for r in rows)
            if v is not None
        ]
        return oi_change_pct(values)

    async def taker_cvd(self, symbol: str, period: str, limit: int) -> CvdResult | None:
        """Cumulative taker buy-minus-sell volume across the window."""
        rows = await self._window_rows("/futures/data/takerlongshortRatio", symbol, period, limit)
        pairs = []
        for r in rows:
            buy = finite_or_none(r.get("buyVol"))
            sell = finite_or_none(r.get("sellVol"))
            if buy is not None and sell is not None:
                pairs.append((buy, sell))
        return cumulative_volume_delta(pairs)
