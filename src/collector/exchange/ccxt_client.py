"""Secondary derivatives exchange client via ccxt async.

Wraps any ccxt.async_support exchange class (Bybit and OKX by default)
with public-only configuration, market loading and async cleanup.
Symbols are ccxt unified perpetual symbols such as ``BTC/USDT:USDT``.
"""

import ccxt.async_support as ccxt_async

from collector.exceptions import ProviderError
from collector.exchange.client import ExchangeClient
from collector.logging import get_logger
from collector.metrics.series import clean_funding_series, finite_or_none

logger = get_logger(__name__)


def perpetual_symbol(asset: str, quote: str = "USDT") -> str:
    """BTC -> BTC/USDT:USDT."""
    return f"{asset.upper()}/{quote}:{quote}"


class CcxtExchangeClient(ExchangeClient):
    """Concrete exchange client backed by a ccxt async exchange instance."""

    def __init__(self, exchange_id: str, timeout_ms: int = 10000) -> None:
        exchange_class = getattr(ccxt_async, exchange_id, None)
        if exchange_class is None:
            raise ValueError(f"Unknown ccxt exchange id: {exchange_id}")

        self._exchange_id = exchange_id
        self._exchange = exchange_class(
            {
                "enableRateLimit": True,
                "timeout": timeout_ms,
                "options": {"defaultType": "swap"},
            }
        )

    @property
    def exchange_id(self) -> str:
        return self._exchange_id

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        logger.info("connecting_to_exchange", exchange=self._exchange_id)
        markets = await self._exchange.load_markets()
        logger.info("exchange_connected", exchange=self._exchange_id, market_count=len(markets))

    async def close(self) -> None:
        """Release the ccxt session; call once per cycle."""
        await self._exchange.close()
        logger.debug("exchange_connection_closed", exchange=self._exchange_id)

    async def fetch_funding_rate_history(self, symbol: str, limit: int = 16) -> list[float]:
        try:
            records = await self._exchange.fetch_funding_rate_history(symbol, limit=limit)
        except ccxt_async.BaseError as e:
            raise ProviderError(f"{self._exchange_id} funding history failed: {e}") from e
        records = sorted(records, key=lambda r: r.get("timestamp") or 0)
        return clean_funding_series(r.get("fundingRate") for r in records)

    async def fetch_funding_rate(self, symbol: str) -> float | None:
        try:
            record = await self._exchange.fetch_funding_rate(symbol)
        except ccxt_async.BaseError as e:
            raise ProviderError(f"{self._exchange_id} funding rate failed: {e}") from e
        return finite_or_none(record.get("fundingRate"))

    async def fetch_long_short_ratio(self, symbol: str, timeframe: str = "30m") -> float | None:
        try:
            history = await self._exchange.fetch_long_short_ratio_history(
                symbol, timeframe, None, 30
            )
        except ccxt_async.BaseError as e:
            raise ProviderError(f"{self._exchange_id} long/short ratio failed: {e}") from e
        if not history:
            return None
        history = sorted(history, key=lambda r: r.get("timestamp") or 0)
        return finite_or_none(history[-1].get("longShortRatio"))
