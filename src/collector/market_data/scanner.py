"""Leaderboard scanner -- ranks the futures universe by OI/CVD signal strength.

The universe is every actively trading USDT perpetual with positive 24h
quote volume, largest first, capped at ``scan_max``. Each symbol is one unit
of work (open-interest change and taker CVD fetched together). A fixed pool
of ``concurrency`` workers drains a queue of units, so at most that many
units are ever in flight and a new unit starts as soon as any worker frees up.

Composite score:
  score = |oi_change_pct| * weight_pct + |cvd_usd| * weight_usd

Per-symbol work shares no mutable state, so the ranking depends only on the
upstream data; ties are broken by symbol.
"""

import asyncio
from typing import Any

from collector.config import ScannerSettings
from collector.logging import get_logger
from collector.metrics.series import (
    classify_verdict,
    finite_or_none,
    round_or_none,
    window_label,
)
from collector.models import CvdResult, Leaderboard, LeaderboardEntry
from collector.providers.binance import BinanceFuturesClient, base_asset

logger = get_logger(__name__)


class BoundedConcurrencyScanner:
    """Scans the perpetual universe under a fixed parallelism cap.

    Args:
        binance: Futures client used for the universe and per-symbol windows.
        settings: Scan cap, worker count, leaderboard size and score weights.
        period: Slice period for open interest and taker volume (e.g. ``5m``).
        limit: Number of slices per window.
    """

    def __init__(
        self,
        binance: BinanceFuturesClient,
        settings: ScannerSettings,
        period: str = "5m",
        limit: int = 6,
    ) -> None:
        self._binance = binance
        self._settings = settings
        self._period = period
        self._limit = limit
        self._in_flight = 0
        self.peak_in_flight = 0

    @property
    def window_label(self) -> str:
        return window_label(self._period, self._limit)

    # ──────────────────────────────────────────────
    # Universe
    # ──────────────────────────────────────────────

    async def universe(self) -> list[tuple[str, float | None]]:
        """(symbol, last price) pairs, by 24h quote volume descending, capped."""
        symbols, tickers = await asyncio.gather(
            self._binance.usdt_perpetuals(),
            self._binance.all_tickers(),
        )

        eligible: list[tuple[str, float, float | None]] = []
        for symbol in symbols:
            ticker = tickers.get(symbol) or {}
            volume = finite_or_none(ticker.get("quoteVolume"))
            if volume is None or volume <= 0:
                continue
            eligible.append((symbol, volume, finite_or_none(ticker.get("lastPrice"))))

        eligible.sort(key=lambda item: (-item[1], item[0]))
        capped = eligible[: min(self._settings.scan_max, len(eligible))]
        logger.debug(
            "scanner_universe",
            listed=len(symbols),
            eligible=len(eligible),
            scanning=len(capped),
        )
        return [(symbol, price) for symbol, _, price in capped]

    # ──────────────────────────────────────────────
    # Scan
    # ──────────────────────────────────────────────

    async def scan(self) -> Leaderboard:
        """Build the leaderboard. Never raises for per-symbol failures."""
        units = await self.universe()
        queue: asyncio.Queue[tuple[str, float | None]] = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)

        results: list[LeaderboardEntry] = []
        skipped = 0

        async def worker() -> None:
            nonlocal skipped
            while True:
                try:
                    symbol, price = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                self._in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
                try:
                    results.append(await self._evaluate(symbol, price))
                except Exception as e:
                    skipped += 1
                    logger.debug("scanner_unit_skipped", symbol=symbol, error=str(e))
                finally:
                    self._in_flight -= 1

        workers = max(1, min(self._settings.concurrency, len(units)))
        await asyncio.gather(*(worker() for _ in range(workers)))

        results.sort(key=lambda e: (-e.score, e.symbol))
        leaderboard = Leaderboard(
            window_label=self.window_label,
            entries=results[: self._settings.top_n],
            scanned=len(units),
            skipped=skipped,
        )
        logger.info(
            "leaderboard_built",
            window=leaderboard.window_label,
            scanned=leaderboard.scanned,
            skipped=leaderboard.skipped,
            top=[e.symbol for e in leaderboard.entries],
        )
        return leaderboard

    async def _evaluate(self, symbol: str, price: float | None) -> LeaderboardEntry:
        oi_result, cvd_result = await asyncio.gather(
            self._binance.open_interest_change(symbol, self._period, self._limit),
            self._binance.taker_cvd(symbol, self._period, self._limit),
            return_exceptions=True,
        )
        oi_pct = _metric_or_none(oi_result)
        cvd = _metric_or_none(cvd_result)

        cvd_value = cvd.cvd if isinstance(cvd, CvdResult) else None
        cvd_usd = None
        if cvd_value is not None and price is not None:
            cvd_usd = round_or_none(cvd_value * price, 2)
        oi_pct = round_or_none(oi_pct, 2)

        return LeaderboardEntry(
            symbol=base_asset(symbol),
            oi_change_pct=oi_pct,
            cvd_usd=cvd_usd,
            price=price,
            verdict=classify_verdict(oi_pct, cvd_value),
            score=self.score(oi_pct, cvd_usd),
        )

    def score(self, oi_pct: float | None, cvd_usd: float | None) -> float:
        """Composite ranking key; a missing metric contributes nothing."""
        return (
            abs(oi_pct or 0.0) * self._settings.weight_pct
            + abs(cvd_usd or 0.0) * self._settings.weight_usd
        )


def _metric_or_none(result: Any) -> Any:
    """A failed sub-fetch yields no value for that metric only."""
    if isinstance(result, BaseException):
        logger.debug("scanner_metric_failed", error=str(result))
        return None
    return result
