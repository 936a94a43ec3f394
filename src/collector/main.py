"""Entry point for one collection cycle.

Wiring order (in run_cycle):
1. Validate required configuration (store path)
2. ProviderSet (HTTP session, CoinGecko, Binance, secondary exchanges, ...)
3. SnapshotDatabase / SnapshotStore
4. SnapshotAssembler -> assemble, persist, ping

Exit codes: 0 success, 1 configuration failure, 2 cycle failure.
"""

import asyncio
import sys
import time
from collections.abc import Callable

from collector.assembler import ProviderSet, SnapshotAssembler
from collector.config import AppSettings
from collector.exceptions import ConfigurationError
from collector.logging import bind_cycle, clear_cycle, get_logger, setup_logging
from collector.models import Snapshot
from collector.store.database import SnapshotDatabase
from collector.store.repository import SnapshotStore

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_FAILURE = 2


def validate_settings(settings: AppSettings) -> None:
    """Raise ConfigurationError before any work when required settings are missing."""
    if not settings.store.path.strip():
        raise ConfigurationError("STORE_PATH is required")
    if not settings.collector.symbols:
        raise ConfigurationError("COLLECTOR_SYMBOLS must name at least one symbol")


async def run_cycle(
    settings: AppSettings,
    providers: ProviderSet | None = None,
    clock: Callable[[], float] = time.time,
) -> Snapshot:
    """Run one full cycle and return the persisted snapshot.

    Args:
        settings: Application settings.
        providers: Pre-built providers (tests); built from settings when omitted.
        clock: Wall clock in seconds.
    """
    validate_settings(settings)
    providers = providers or ProviderSet.from_settings(settings)
    try:
        await providers.open()
        async with SnapshotDatabase(settings.store.path) as database:
            store = SnapshotStore(database)
            assembler = SnapshotAssembler(settings, providers, store, clock=clock)
            return await assembler.run()
    finally:
        await providers.close()


async def run(settings: AppSettings | None = None) -> int:
    """Run one cycle and map the outcome to a process exit code."""
    settings = settings or AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("collector.main")

    cycle_id = bind_cycle()
    logger.info(
        "cycle_started",
        cycle_id=cycle_id,
        symbols=settings.collector.symbols,
        oi_cvd_period=settings.collector.oi_cvd_period,
        oi_cvd_limit=settings.collector.oi_cvd_limit,
        scan_max=settings.scanner.scan_max,
        concurrency=settings.scanner.concurrency,
    )
    try:
        await run_cycle(settings)
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        return EXIT_CONFIG
    except Exception:
        logger.exception("cycle_failed")
        return EXIT_FAILURE
    finally:
        clear_cycle()
    return EXIT_OK


def main() -> None:
    """Synchronous entry point (``collector-run``)."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
