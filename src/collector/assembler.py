"""One collection cycle: gather every metric, repair gaps, persist one snapshot.

Cycle order:
1. Per-symbol market data (CoinGecko markets, Binance 24h ticker for gaps)
2. Daily chart analytics (RSI now/prev, previous-day change, volume delta)
3. Funding and long/short through their fallback chains
4. Optional exchange reserve net flows
5. Sentiment index (one fetch shared by every symbol)
6. OI/CVD records for the primary symbols
7. Leaderboard scan over the futures universe
8. Dominance and macro index, each with a 24h delta against history
9. Aggregate capitalization totals
10. Backfill pass over the required fields, persist, liveness ping

Provider failures never abort the cycle: they leave the affected metric
empty for the backfill pass. Store failures and unexpected exceptions
propagate to the caller.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from collector.backfill import (
    DOMINANCE_PCT,
    MACRO_INDEX_PRICE,
    TemporalBackfillResolver,
    required_fields,
)
from collector.config import AppSettings
from collector.exceptions import ConfigurationError, ProviderError
from collector.exchange.ccxt_client import CcxtExchangeClient
from collector.exchange.client import ExchangeClient
from collector.fallback import (
    dominance_chain,
    funding_chain,
    long_short_chain,
    macro_index_chain,
)
from collector.health import ping_healthcheck
from collector.logging import get_logger
from collector.market_data.scanner import BoundedConcurrencyScanner
from collector.metrics.caps import compute_aggregate_caps
from collector.metrics.series import (
    classify_verdict,
    finite_or_none,
    is_near_zero,
    pct_change,
    round_or_none,
    rsi,
    volume_delta_pct,
    window_label,
)
from collector.models import (
    AggregateCaps,
    FundingReading,
    Leaderboard,
    LongShort,
    MacroIndex,
    OiCvdRecord,
    SentimentReading,
    Snapshot,
    SymbolMetricSet,
)
from collector.providers.binance import BinanceFuturesClient, futures_symbol
from collector.providers.coingecko import BIGGEST_ID, SECOND_ID, CoinGeckoClient, coingecko_id
from collector.providers.coinlore import CoinLoreClient
from collector.providers.http import HttpClient
from collector.providers.macro import MacroQuoteClient
from collector.providers.reserves import (
    ReservesClient,
    net_flows_two_windows,
    read_series_for_symbol,
)
from collector.providers.rotating import RotatingEndpointClient
from collector.providers.sentiment import SentimentClient
from collector.store.repository import SnapshotStore

logger = get_logger(__name__)

HOUR_MS = 3600 * 1000


@dataclass
class ProviderSet:
    """Every upstream client one cycle needs, sharing one HTTP session.

    Built fresh per cycle so rate-limiter state and response caches never
    outlive it.
    """

    http: HttpClient
    coingecko: CoinGeckoClient
    binance: BinanceFuturesClient
    sentiment: SentimentClient
    macro: MacroQuoteClient
    coinlore: CoinLoreClient
    reserves: ReservesClient
    secondary: ExchangeClient | None = None
    tertiary: ExchangeClient | None = None

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ProviderSet":
        p = settings.providers
        ex = settings.exchange
        http = HttpClient(timeout=p.http_timeout_seconds, user_agent=p.user_agent)
        retry_pause = p.retry_pause_ms / 1000
        return cls(
            http=http,
            coingecko=CoinGeckoClient(
                http,
                api_key=p.coingecko_api_key.get_secret_value(),
                min_interval=p.coingecko_min_interval_ms / 1000,
                attempts=p.coingecko_attempts,
                retry_pause=p.coingecko_retry_pause_ms / 1000,
            ),
            binance=BinanceFuturesClient(
                RotatingEndpointClient(http), http, retry_pause=retry_pause
            ),
            sentiment=SentimentClient(http),
            macro=MacroQuoteClient(http, timeout=p.fast_timeout_seconds),
            coinlore=CoinLoreClient(http, timeout=p.fast_timeout_seconds),
            reserves=ReservesClient(http),
            secondary=_exchange_or_none(ex.secondary_id, ex.timeout_ms),
            tertiary=_exchange_or_none(ex.tertiary_id, ex.timeout_ms),
        )

    def exchanges(self) -> list[ExchangeClient]:
        return [e for e in (self.secondary, self.tertiary) if e is not None]

    async def open(self) -> None:
        """Load secondary exchange markets; an unreachable exchange is dropped."""
        for attr in ("secondary", "tertiary"):
            exchange = getattr(self, attr)
            if exchange is None:
                continue
            try:
                await exchange.connect()
            except Exception as e:
                logger.warning("exchange_unavailable", exchange=exchange.exchange_id, error=str(e))
                await exchange.close()
                setattr(self, attr, None)

    async def close(self) -> None:
        for exchange in self.exchanges():
            await exchange.close()
        await self.http.close()


def _exchange_or_none(exchange_id: str, timeout_ms: int) -> ExchangeClient | None:
    if not exchange_id:
        return None
    try:
        return CcxtExchangeClient(exchange_id, timeout_ms=timeout_ms)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def local_iso_timestamp(at_ms: int, tz_name: str) -> str:
    """ISO-8601 time of ``at_ms`` in ``tz_name``; UTC if the zone is unknown."""
    try:
        tz: Any = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", timezone=tz_name)
        tz = timezone.utc
    return datetime.fromtimestamp(at_ms / 1000, tz=tz).isoformat(timespec="seconds")


class SnapshotAssembler:
    """Orchestrates all providers, chains and backfill into one Snapshot.

    Args:
        settings: Application settings.
        providers: Upstream clients for this cycle.
        store: Snapshot store (history reads and the final insert).
        clock: Wall clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        settings: AppSettings,
        providers: ProviderSet,
        store: SnapshotStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._providers = providers
        self._store = store
        self._clock = clock
        self._resolver = TemporalBackfillResolver(
            store,
            scan_limit=settings.backfill.scan_limit,
            window_ms=settings.backfill.window_hours * HOUR_MS,
            window_scan_limit=settings.backfill.window_scan_limit,
        )
        self._funding = funding_chain(providers.binance, providers.secondary, providers.tertiary)
        self._long_short = long_short_chain(providers.binance, providers.secondary)
        self._dominance = dominance_chain(providers.coingecko, providers.coinlore)
        self._macro = macro_index_chain(providers.macro)
        self._markets: dict[str, dict[str, Any]] = {}

    async def run(self) -> Snapshot:
        """Assemble, persist and report one snapshot."""
        started = time.monotonic()
        snapshot = await self.assemble()
        await self._store.insert(snapshot)

        url = self._settings.collector.healthcheck_url
        if url:
            await ping_healthcheck(self._providers.http, url)

        logger.info(
            "cycle_completed",
            at=snapshot.at,
            symbols=len(snapshot.per_symbol),
            stale=len(snapshot.staleness),
            elapsed_seconds=round(time.monotonic() - started, 1),
        )
        return snapshot

    async def assemble(self) -> Snapshot:
        collector = self._settings.collector
        now_ms = int(self._clock() * 1000)

        snapshot = Snapshot(
            at=now_ms,
            iso_local_timestamp=local_iso_timestamp(now_ms, collector.timezone),
            aggregation_period=collector.oi_cvd_period,
            aggregation_slice_count=collector.oi_cvd_limit,
            expire_at=now_ms + self._settings.store.retention_hours * HOUR_MS,
        )

        snapshot.per_symbol = await self._build_symbol_metrics(collector.symbols)
        await self._apply_net_flows(snapshot.per_symbol)
        await self._apply_sentiment(snapshot.per_symbol)

        for symbol in collector.oi_cvd_symbols:
            metrics = snapshot.per_symbol.get(symbol)
            snapshot.oi_cvd[symbol] = await self._build_oi_cvd(
                symbol, metrics.price if metrics else None
            )

        snapshot.leaderboard = await self._build_leaderboard()
        await self._apply_dominance(snapshot)
        await self._apply_macro_index(snapshot)
        snapshot.aggregate_caps = await self._build_aggregate_caps()

        await self._resolver.fill(
            snapshot, required_fields(collector.symbols, collector.oi_cvd_symbols)
        )
        return snapshot

    # ──────────────────────────────────────────────
    # Per-symbol metrics
    # ──────────────────────────────────────────────

    async def _load_markets(self, ids: list[str]) -> None:
        missing = [i for i in ids if i not in self._markets]
        if not missing:
            return
        try:
            records = await self._providers.coingecko.markets(missing)
        except ProviderError as e:
            logger.warning("coingecko_markets_failed", error=str(e))
            return
        for record in records:
            if record.get("id"):
                self._markets[str(record["id"])] = record

    async def _build_symbol_metrics(self, symbols: list[str]) -> dict[str, SymbolMetricSet]:
        ids = [i for i in (coingecko_id(s) for s in symbols) if i]
        await self._load_markets(ids)

        out: dict[str, SymbolMetricSet] = {}
        for symbol in symbols:
            metrics = SymbolMetricSet(symbol=symbol)
            await self._apply_market(metrics)
            await self._apply_chart(metrics)
            await self._apply_funding(metrics)
            await self._apply_long_short(metrics)
            out[symbol] = metrics
        return out

    async def _apply_market(self, metrics: SymbolMetricSet) -> None:
        cg_id = coingecko_id(metrics.symbol)
        record = self._markets.get(cg_id or "", {})
        price = finite_or_none(record.get("current_price"))
        metrics.price = price or None
        metrics.pct24 = finite_or_none(record.get("price_change_percentage_24h"))
        metrics.vol24 = finite_or_none(record.get("total_volume"))

        if metrics.price is not None and metrics.pct24 is not None and metrics.vol24 is not None:
            return
        try:
            ticker = await self._providers.binance.ticker_24h(futures_symbol(metrics.symbol))
        except ProviderError as e:
            logger.debug("ticker_fallback_failed", symbol=metrics.symbol, error=str(e))
            return
        if metrics.price is None:
            metrics.price = ticker.price
        if metrics.pct24 is None:
            metrics.pct24 = ticker.pct24
        if metrics.vol24 is None:
            metrics.vol24 = ticker.vol24

    async def _apply_chart(self, metrics: SymbolMetricSet) -> None:
        cg_id = coingecko_id(metrics.symbol)
        if cg_id is None:
            return
        try:
            chart = await self._providers.coingecko.market_chart(cg_id, days=16)
        except ProviderError as e:
            logger.warning("coingecko_chart_failed", symbol=metrics.symbol, error=str(e))
            return

        closes = _series_values(chart.get("prices"))
        if len(closes) >= 16:
            metrics.rsi14 = rsi(closes[-15:])
            metrics.rsi14_prev = rsi(closes[-16:-1])
        if len(closes) >= 3:
            metrics.pct_prev = pct_change(closes[-2], closes[-3])

        volumes = _series_values(chart.get("total_volumes"))
        delta = volume_delta_pct(volumes)
        if delta is not None:
            metrics.vol_prev = volumes[-2]
            metrics.vol_delta_pct = delta

    async def _apply_funding(self, metrics: SymbolMetricSet) -> None:
        result = await self._funding.resolve(metrics.symbol)
        reading: FundingReading | None = result.value
        if reading is None:
            return
        metrics.funding_now = _drop_near_zero(reading.now)
        metrics.funding_prev = _drop_near_zero(reading.prev)
        metrics.funding_delta = _drop_near_zero(reading.delta)
        logger.debug("funding_resolved", symbol=metrics.symbol, source=result.source)

    async def _apply_long_short(self, metrics: SymbolMetricSet) -> None:
        result = await self._long_short.resolve(metrics.symbol)
        value: LongShort | None = result.value
        if value is not None:
            metrics.long_short = value
            metrics.long_short_source = result.source

    async def _apply_net_flows(self, per_symbol: dict[str, SymbolMetricSet]) -> None:
        slug = self._settings.collector.reserves_exchange
        if not slug:
            return
        try:
            dataset = await self._providers.reserves.dataset(slug)
        except ProviderError as e:
            logger.warning("reserves_unavailable", exchange=slug, error=str(e))
            return
        for symbol, metrics in per_symbol.items():
            flows = net_flows_two_windows(read_series_for_symbol(dataset, symbol))
            metrics.net_flows_usd_now = flows.now_usd
            metrics.net_flows_usd_prev = flows.prev_usd
            metrics.net_flows_usd_diff = flows.diff_usd

    async def _apply_sentiment(self, per_symbol: dict[str, SymbolMetricSet]) -> None:
        try:
            reading = await self._providers.sentiment.latest()
        except ProviderError as e:
            logger.warning("sentiment_failed", error=str(e))
            reading = SentimentReading()
        for metrics in per_symbol.values():
            metrics.sentiment_value = reading.value
            metrics.sentiment_class = reading.classification
            metrics.sentiment_ts = reading.timestamp_ms

    # ──────────────────────────────────────────────
    # Open interest, order flow, leaderboard
    # ──────────────────────────────────────────────

    async def _build_oi_cvd(self, symbol: str, price: float | None) -> OiCvdRecord:
        collector = self._settings.collector
        period, limit = collector.oi_cvd_period, collector.oi_cvd_limit
        record = OiCvdRecord(
            symbol=symbol, period=period, limit=limit, window_label=window_label(period, limit)
        )
        binance = self._providers.binance
        binance_symbol = futures_symbol(symbol)
        oi_result, cvd_result = await asyncio.gather(
            binance.open_interest_change(binance_symbol, period, limit),
            binance.taker_cvd(binance_symbol, period, limit),
            return_exceptions=True,
        )
        oi_pct = _provider_value(oi_result, "open_interest", symbol)
        cvd = _provider_value(cvd_result, "taker_cvd", symbol)

        record.oi_change_pct = round_or_none(oi_pct, 2)
        if cvd is not None:
            record.cvd = round_or_none(cvd.cvd, 2)
            record.delta_last = round_or_none(cvd.delta_last, 2)
        if record.cvd is not None and price is not None:
            record.cvd_usd = round_or_none(record.cvd * price, 2)
        record.verdict = classify_verdict(record.oi_change_pct, record.cvd)
        logger.info(
            "oi_cvd_built",
            symbol=symbol,
            oi_change_pct=record.oi_change_pct,
            cvd=record.cvd,
            verdict=record.verdict.value,
        )
        return record

    def _scanner(self) -> BoundedConcurrencyScanner:
        collector = self._settings.collector
        return BoundedConcurrencyScanner(
            self._providers.binance,
            self._settings.scanner,
            period=collector.oi_cvd_period,
            limit=collector.oi_cvd_limit,
        )

    async def _build_leaderboard(self) -> Leaderboard:
        scanner = self._scanner()
        try:
            return await scanner.scan()
        except ProviderError as e:
            logger.warning("leaderboard_failed", error=str(e))
            return Leaderboard(window_label=scanner.window_label)

    # ──────────────────────────────────────────────
    # Dominance, macro index, aggregate caps
    # ──────────────────────────────────────────────

    async def _apply_dominance(self, snapshot: Snapshot) -> None:
        result = await self._dominance.resolve()
        snapshot.dominance_pct = round_or_none(result.value, 2)

        if snapshot.dominance_pct is None:
            source = await self._resolver.most_recent_valid(DOMINANCE_PCT)
            if source is not None:
                # the backfill pass carries the delta over from history too
                snapshot.dominance_pct = source.dominance_pct
                snapshot.mark_stale(DOMINANCE_PCT.path, source.at)
        else:
            delta = await self._resolver.delta_vs_reference(
                DOMINANCE_PCT, snapshot.dominance_pct, snapshot.at
            )
            snapshot.dominance_delta_pct = round_or_none(delta, 2)
        logger.info(
            "dominance_resolved",
            source=result.source,
            value=snapshot.dominance_pct,
            delta_pct=snapshot.dominance_delta_pct,
        )

    async def _apply_macro_index(self, snapshot: Snapshot) -> None:
        result = await self._macro.resolve()
        macro = MacroIndex(price=result.value, source_tag=result.source)

        if macro.price is None:
            source = await self._resolver.most_recent_valid(MACRO_INDEX_PRICE)
            if source is not None:
                macro.price = source.macro_index.price
                macro.source_tag = source.macro_index.source_tag
                snapshot.mark_stale(MACRO_INDEX_PRICE.path, source.at)
        else:
            delta = await self._resolver.delta_vs_reference(
                MACRO_INDEX_PRICE, macro.price, snapshot.at
            )
            macro.pct_24h = round_or_none(delta, 2)
        snapshot.macro_index = macro
        logger.info(
            "macro_index_resolved",
            source=macro.source_tag,
            price=macro.price,
            pct_24h=macro.pct_24h,
        )

    async def _build_aggregate_caps(self) -> AggregateCaps:
        try:
            data = await self._providers.coingecko.global_data()
        except ProviderError as e:
            logger.warning("aggregate_caps_failed", error=str(e))
            return AggregateCaps()

        await self._load_markets([BIGGEST_ID, SECOND_ID])
        biggest = self._markets.get(BIGGEST_ID, {})
        second = self._markets.get(SECOND_ID, {})
        inputs = [
            finite_or_none((data.get("total_market_cap") or {}).get("usd")),
            finite_or_none(data.get("market_cap_change_percentage_24h_usd")),
            finite_or_none(biggest.get("market_cap")),
            finite_or_none(biggest.get("market_cap_change_percentage_24h")),
            finite_or_none(second.get("market_cap")),
            finite_or_none(second.get("market_cap_change_percentage_24h")),
        ]
        if any(v is None for v in inputs):
            logger.warning("aggregate_caps_incomplete", inputs=inputs)
            return AggregateCaps()

        caps = compute_aggregate_caps(*inputs)  # type: ignore[arg-type]
        logger.info("aggregate_caps_computed", total=caps.total, d1=caps.d1, d2=caps.d2, d3=caps.d3)
        return caps


def _series_values(points: Any) -> list[float]:
    """Values of ``[[ts, value], ...]`` pairs, skipping malformed points."""
    values = []
    for point in points or []:
        if isinstance(point, (list, tuple)) and len(point) >= 2:
            value = finite_or_none(point[1])
            if value is not None:
                values.append(value)
    return values


def _provider_value(result: Any, metric: str, symbol: str) -> Any:
    """Unwrap one gathered fetch; a ProviderError empties only that metric."""
    if isinstance(result, ProviderError):
        logger.warning("oi_cvd_metric_failed", symbol=symbol, metric=metric, error=str(result))
        return None
    if isinstance(result, BaseException):
        raise result
    return result


def _drop_near_zero(value: float | None) -> float | None:
    return None if value is None or is_near_zero(value) else value
