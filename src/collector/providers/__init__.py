"""Upstream data providers: HTTP transport, pacing, mirrors and per-provider clients."""

from collector.providers.binance import BinanceFuturesClient
from collector.providers.coingecko import CoinGeckoClient
from collector.providers.http import HttpClient
from collector.providers.rate_limited import RateLimitedSource
from collector.providers.rotating import RotatingEndpointClient

__all__ = [
    "BinanceFuturesClient",
    "CoinGeckoClient",
    "HttpClient",
    "RateLimitedSource",
    "RotatingEndpointClient",
]
