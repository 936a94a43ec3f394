"""Primary price/market aggregator: CoinGecko public API.

CoinGecko's free tier allows only a handful of calls per minute, so every
request goes through a RateLimitedSource: paced, serialized and cached for
the cycle. Several assembler steps ask for ``/global``; only the first
reaches the network.
"""

from typing import Any

from collector.exceptions import ProviderError
from collector.logging import get_logger
from collector.providers.http import HttpClient
from collector.providers.rate_limited import RateLimitedSource

logger = get_logger(__name__)

COINGECKO_BASE_URL = "https://api.coingecko.com"

# Asset symbol -> CoinGecko coin id
COINGECKO_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "PAXG": "pax-gold",
    "SOL": "solana",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "TON": "the-open-network",
    "ADA": "cardano",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "DOT": "polkadot",
    "LTC": "litecoin",
}

#: The two largest assets, used for the ex-biggest aggregate totals.
BIGGEST_ID = "bitcoin"
SECOND_ID = "ethereum"


def coingecko_id(asset: str) -> str | None:
    return COINGECKO_IDS.get(asset.upper())


class CoinGeckoClient:
    """Typed accessors over CoinGecko, all routed through one RateLimitedSource.

    Args:
        http: Shared HTTP client.
        api_key: Optional demo API key for the higher free quota.
        min_interval: Seconds between real requests.
        attempts: Attempts per real request.
        retry_pause: Seconds between attempts.
    """

    def __init__(
        self,
        http: HttpClient,
        api_key: str = "",
        min_interval: float = 0.8,
        attempts: int = 2,
        retry_pause: float = 0.5,
        base_url: str = COINGECKO_BASE_URL,
    ) -> None:
        self._http = http
        self._base_url = base_url
        self._headers = {"x-cg-demo-api-key": api_key} if api_key else None
        self.source = RateLimitedSource(
            self._fetch,
            min_interval=min_interval,
            attempts=attempts,
            retry_pause=retry_pause,
        )

    async def _fetch(self, path: str, params: dict[str, Any] | None) -> Any:
        return await self._http.get_json(
            f"{self._base_url}{path}", params=params, headers=self._headers
        )

    async def markets(self, ids: list[str]) -> list[dict[str, Any]]:
        """Market records (price, caps, 24h changes) for the given coin ids."""
        if not ids:
            return []
        data = await self.source.request(
            "/api/v3/coins/markets",
            {
                "vs_currency": "usd",
                "ids": ",".join(sorted(set(ids))),
                "order": "market_cap_desc",
                "per_page": 250,
                "page": 1,
                "sparkline": "false",
                "price_change_percentage": "24h",
            },
        )
        if not isinstance(data, list):
            raise ProviderError("coingecko markets body is not a list")
        return [rec for rec in data if isinstance(rec, dict)]

    async def market_chart(self, coin_id: str, days: int = 16) -> dict[str, Any]:
        """Daily ``prices`` and ``total_volumes`` series as [ts, value] pairs."""
        data = await self.source.request(
            f"/api/v3/coins/{coin_id}/market_chart",
            {"vs_currency": "usd", "days": days, "interval": "daily"},
        )
        if not isinstance(data, dict):
            raise ProviderError(f"coingecko chart body for {coin_id} is not an object")
        return data

    async def global_data(self) -> dict[str, Any]:
        """The ``data`` object of ``/api/v3/global``."""
        data = await self.source.request("/api/v3/global")
        inner = data.get("data") if isinstance(data, dict) else None
        if not isinstance(inner, dict):
            raise ProviderError("coingecko global body has no data object")
        return inner
