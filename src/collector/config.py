"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Annotated

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_symbols(value: object) -> object:
    """Accept ``"BTC, eth,PAXG"`` as well as a list; normalise to upper case."""
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple)):
        return [str(v).strip().upper() for v in value if str(v).strip()]
    return value


class StoreSettings(BaseSettings):
    """Snapshot store location and retention.

    ``path`` has no usable default: an empty value is a fatal startup error.
    """

    model_config = SettingsConfigDict(env_prefix="STORE_")

    path: str = ""
    retention_hours: int = 24


class CollectorSettings(BaseSettings):
    """What one collection cycle tracks."""

    model_config = SettingsConfigDict(env_prefix="COLLECTOR_")

    symbols: Annotated[list[str], NoDecode] = ["BTC", "ETH", "PAXG"]
    oi_cvd_symbols: Annotated[list[str], NoDecode] = ["BTC", "ETH"]
    oi_cvd_period: str = "5m"
    oi_cvd_limit: int = 6
    timezone: str = "Europe/Kyiv"
    healthcheck_url: str = ""
    reserves_exchange: str = ""  # e.g. "binance"; empty disables net flows

    @field_validator("symbols", "oi_cvd_symbols", mode="before")
    @classmethod
    def _parse_symbols(cls, value: object) -> object:
        return _split_symbols(value)


class ProviderSettings(BaseSettings):
    """HTTP behaviour for upstream data providers."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")

    coingecko_api_key: SecretStr = SecretStr("")
    coingecko_min_interval_ms: int = 800
    coingecko_retry_pause_ms: int = 500
    coingecko_attempts: int = 2
    http_timeout_seconds: float = 10.0
    fast_timeout_seconds: float = 7.0  # dominance and macro feeds
    retry_pause_ms: int = 500
    user_agent: str = "market-snapshot-collector/1.0"


class ExchangeSettings(BaseSettings):
    """Secondary derivatives exchanges reached through ccxt (public endpoints only)."""

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_")

    secondary_id: str = "bybit"
    tertiary_id: str = "okx"
    timeout_ms: int = 10000


class ScannerSettings(BaseSettings):
    """Leaderboard scan budget and ranking weights."""

    model_config = SettingsConfigDict(env_prefix="SCANNER_")

    scan_max: int = 120
    concurrency: int = 8
    top_n: int = 10
    weight_pct: float = 1.0
    weight_usd: float = 1e-6  # tunable: converts CVD dollars to the OI percent scale


class BackfillSettings(BaseSettings):
    """Bounds for historical lookups when a field is missing."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    scan_limit: int = 500
    window_hours: int = 72
    window_scan_limit: int = 1000


class WatcherSettings(BaseSettings):
    """Periodic trigger and query API."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    period_seconds: int = 900
    api_enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class NotifierSettings(BaseSettings):
    """Cycle status notifications (Telegram Bot API)."""

    model_config = SettingsConfigDict(env_prefix="NOTIFIER_")

    telegram_bot_token: SecretStr = SecretStr("")
    chat_id: str = ""


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    store: StoreSettings = StoreSettings()
    collector: CollectorSettings = CollectorSettings()
    providers: ProviderSettings = ProviderSettings()
    exchange: ExchangeSettings = ExchangeSettings()
    scanner: ScannerSettings = ScannerSettings()
    backfill: BackfillSettings = BackfillSettings()
    watcher: WatcherSettings = WatcherSettings()
    notifier: NotifierSettings = NotifierSettings()
