"""Concrete metric sources and the fallback chains built from them.

Source order inside each factory is the priority order: strongest signal
first, weaker or alternate providers after.
"""

from collector.exchange.ccxt_client import perpetual_symbol
from collector.exchange.client import ExchangeClient
from collector.fallback.chain import (
    FallbackChain,
    MetricSource,
    is_dominance_valid,
    is_funding_valid,
    is_long_short_valid,
    is_positive_number,
)
from collector.metrics.series import derive_long_short_from_ratio, funding_delta
from collector.models import FundingReading, LongShort
from collector.providers.binance import BinanceFuturesClient, futures_symbol
from collector.providers.coingecko import CoinGeckoClient
from collector.providers.coinlore import CoinLoreClient
from collector.providers.macro import MacroQuoteClient

# ──────────────────────────────────────────────
# Long/short ratio
# ──────────────────────────────────────────────


class BinanceGlobalLongShort(MetricSource[LongShort]):
    def __init__(self, binance: BinanceFuturesClient, period: str) -> None:
        self.tag = f"binance_global_{period}"
        self._binance = binance
        self._period = period

    async def fetch(self, symbol: str) -> LongShort | None:
        return await self._binance.global_long_short(futures_symbol(symbol), self._period)


class BinanceTopAccountsLongShort(MetricSource[LongShort]):
    def __init__(self, binance: BinanceFuturesClient, period: str = "4h") -> None:
        self.tag = f"binance_top_acc_{period}"
        self._binance = binance
        self._period = period

    async def fetch(self, symbol: str) -> LongShort | None:
        return await self._binance.top_accounts_long_short(futures_symbol(symbol), self._period)


class BinanceTopPositionsLongShort(MetricSource[LongShort]):
    def __init__(self, binance: BinanceFuturesClient, period: str = "4h") -> None:
        self.tag = f"binance_top_pos_{period}"
        self._binance = binance
        self._period = period

    async def fetch(self, symbol: str) -> LongShort | None:
        return await self._binance.top_positions_long_short(futures_symbol(symbol), self._period)


class ExchangeLongShort(MetricSource[LongShort]):
    def __init__(self, exchange: ExchangeClient, timeframe: str = "30m") -> None:
        self.tag = f"{exchange.exchange_id}_{timeframe}"
        self._exchange = exchange
        self._timeframe = timeframe

    async def fetch(self, symbol: str) -> LongShort | None:
        ratio = await self._exchange.fetch_long_short_ratio(
            perpetual_symbol(symbol), self._timeframe
        )
        return derive_long_short_from_ratio(ratio)


def long_short_chain(
    binance: BinanceFuturesClient,
    secondary: ExchangeClient | None = None,
) -> FallbackChain[LongShort]:
    sources: list[MetricSource[LongShort]] = [
        BinanceGlobalLongShort(binance, "1h"),
        BinanceGlobalLongShort(binance, "4h"),
        BinanceGlobalLongShort(binance, "30m"),
        BinanceTopAccountsLongShort(binance, "4h"),
        BinanceTopPositionsLongShort(binance, "4h"),
    ]
    if secondary is not None:
        sources.append(ExchangeLongShort(secondary, "30m"))
    return FallbackChain("long_short", sources, is_long_short_valid)


# ──────────────────────────────────────────────
# Funding rate
# ──────────────────────────────────────────────


class BinanceFundingSeries(MetricSource[FundingReading]):
    tag = "binance_series"

    def __init__(self, binance: BinanceFuturesClient, limit: int = 24) -> None:
        self._binance = binance
        self._limit = limit

    async def fetch(self, symbol: str) -> FundingReading | None:
        series = await self._binance.funding_series(futures_symbol(symbol), self._limit)
        return funding_delta(series)


class BinanceWwwFundingSeries(MetricSource[FundingReading]):
    tag = "binance_www_series"

    def __init__(self, binance: BinanceFuturesClient, limit: int = 48) -> None:
        self._binance = binance
        self._limit = limit

    async def fetch(self, symbol: str) -> FundingReading | None:
        series = await self._binance.funding_series_www(futures_symbol(symbol), self._limit)
        return funding_delta(series)


class BinancePremiumIndexFunding(MetricSource[FundingReading]):
    tag = "binance_premium_index"

    def __init__(self, binance: BinanceFuturesClient) -> None:
        self._binance = binance

    async def fetch(self, symbol: str) -> FundingReading | None:
        value = await self._binance.premium_index_funding(futures_symbol(symbol))
        return FundingReading(now=value) if value is not None else None


class ExchangeFundingSeries(MetricSource[FundingReading]):
    def __init__(self, exchange: ExchangeClient, limit: int = 16) -> None:
        self.tag = f"{exchange.exchange_id}_series"
        self._exchange = exchange
        self._limit = limit

    async def fetch(self, symbol: str) -> FundingReading | None:
        series = await self._exchange.fetch_funding_rate_history(
            perpetual_symbol(symbol), self._limit
        )
        return funding_delta(series)


class ExchangeFundingPoint(MetricSource[FundingReading]):
    def __init__(self, exchange: ExchangeClient) -> None:
        self.tag = f"{exchange.exchange_id}_point"
        self._exchange = exchange

    async def fetch(self, symbol: str) -> FundingReading | None:
        value = await self._exchange.fetch_funding_rate(perpetual_symbol(symbol))
        return FundingReading(now=value) if value is not None else None


def funding_chain(
    binance: BinanceFuturesClient,
    secondary: ExchangeClient | None = None,
    tertiary: ExchangeClient | None = None,
) -> FallbackChain[FundingReading]:
    sources: list[MetricSource[FundingReading]] = [
        BinanceFundingSeries(binance),
        BinanceWwwFundingSeries(binance),
        BinancePremiumIndexFunding(binance),
    ]
    if secondary is not None:
        sources.append(ExchangeFundingSeries(secondary))
    if tertiary is not None:
        sources.append(ExchangeFundingPoint(tertiary))
    return FallbackChain("funding", sources, is_funding_valid)


# ──────────────────────────────────────────────
# Macro index price
# ──────────────────────────────────────────────


class YahooQuote(MetricSource[float]):
    def __init__(self, macro: MacroQuoteClient, ticker: str) -> None:
        self.tag = ticker
        self._macro = macro

    async def fetch(self, symbol: str) -> float | None:
        return await self._macro.yahoo_price(self.tag)


class StooqDailyClose(MetricSource[float]):
    def __init__(self, macro: MacroQuoteClient, ticker: str = "^spx") -> None:
        self.tag = f"STOOQ_{ticker.upper()}"
        self._macro = macro
        self._ticker = ticker

    async def fetch(self, symbol: str) -> float | None:
        close = await self._macro.stooq_daily(self._ticker)
        return close.price if close is not None else None


def macro_index_chain(macro: MacroQuoteClient) -> FallbackChain[float]:
    return FallbackChain(
        "macro_index",
        [YahooQuote(macro, "^GSPC"), YahooQuote(macro, "SPY"), StooqDailyClose(macro)],
        is_positive_number,
    )


# ──────────────────────────────────────────────
# Dominance percentage
# ──────────────────────────────────────────────


class CoinGeckoDominance(MetricSource[float]):
    tag = "coingecko"

    def __init__(self, coingecko: CoinGeckoClient, asset: str = "btc") -> None:
        self._coingecko = coingecko
        self._asset = asset

    async def fetch(self, symbol: str) -> float | None:
        data = await self._coingecko.global_data()
        shares = data.get("market_cap_percentage") or {}
        value = shares.get(self._asset)
        return float(value) if isinstance(value, (int, float)) else None


class CoinLoreDominance(MetricSource[float]):
    tag = "coinlore"

    def __init__(self, coinlore: CoinLoreClient) -> None:
        self._coinlore = coinlore

    async def fetch(self, symbol: str) -> float | None:
        return await self._coinlore.btc_dominance()


def dominance_chain(
    coingecko: CoinGeckoClient, coinlore: CoinLoreClient
) -> FallbackChain[float]:
    return FallbackChain(
        "dominance",
        [CoinGeckoDominance(coingecko), CoinLoreDominance(coinlore)],
        is_dominance_valid,
    )
