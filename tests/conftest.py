"""Shared test fixtures for the market snapshot collector."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from collector.assembler import ProviderSet
from collector.config import (
    AppSettings,
    CollectorSettings,
    ExchangeSettings,
    ProviderSettings,
    ScannerSettings,
    StoreSettings,
)
from collector.exceptions import ProviderError
from collector.models import Snapshot
from collector.store.database import SnapshotDatabase
from collector.store.repository import SnapshotStore

NOW_MS = 1_700_000_000_000
HOUR_MS = 3600 * 1000


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """AppSettings with a temp store, no pacing and no secondary exchanges."""
    return AppSettings(
        log_level="DEBUG",
        store=StoreSettings(path=str(tmp_path / "snapshots.db"), retention_hours=24),
        collector=CollectorSettings(
            symbols=["BTC", "ETH"],
            oi_cvd_symbols=["BTC"],
            timezone="UTC",
            healthcheck_url="",
            reserves_exchange="",
        ),
        providers=ProviderSettings(
            coingecko_min_interval_ms=0,
            coingecko_retry_pause_ms=0,
            retry_pause_ms=0,
        ),
        exchange=ExchangeSettings(secondary_id="", tertiary_id=""),
        scanner=ScannerSettings(scan_max=10, concurrency=3, top_n=5),
    )


@pytest_asyncio.fixture
async def store(mock_settings: AppSettings):
    async with SnapshotDatabase(mock_settings.store.path) as database:
        yield SnapshotStore(database)


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Factory for minimal snapshots; keyword arguments override fields."""

    def factory(at: int, **overrides: Any) -> Snapshot:
        fields: dict[str, Any] = {
            "at": at,
            "iso_local_timestamp": "",
            "aggregation_period": "5m",
            "aggregation_slice_count": 6,
            "expire_at": at + 1000 * 24 * HOUR_MS,
        }
        fields.update(overrides)
        return Snapshot(**fields)

    return factory


_FAILING_METHODS = {
    "coingecko": ("markets", "market_chart", "global_data"),
    "binance": (
        "ticker_24h",
        "all_tickers",
        "usdt_perpetuals",
        "funding_series",
        "funding_series_www",
        "premium_index_funding",
        "global_long_short",
        "top_accounts_long_short",
        "top_positions_long_short",
        "open_interest_change",
        "taker_cvd",
    ),
    "sentiment": ("latest",),
    "macro": ("yahoo_price", "stooq_daily"),
    "coinlore": ("btc_dominance",),
    "reserves": ("dataset",),
}


@pytest.fixture
def providers() -> ProviderSet:
    """Every upstream method raises ProviderError unless a test overrides it."""
    clients = {}
    for name, methods in _FAILING_METHODS.items():
        client = MagicMock()
        for method in methods:
            setattr(client, method, AsyncMock(side_effect=ProviderError(f"{name}.{method}")))
        clients[name] = client
    http = MagicMock()
    http.get_text = AsyncMock(return_value="OK")
    http.close = AsyncMock()
    return ProviderSet(http=http, **clients)
