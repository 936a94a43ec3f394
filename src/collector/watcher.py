"""Long-running trigger for collection cycles, with the query API alongside.

CycleWatcher runs one cycle every ``period_seconds`` and whenever trigger()
is called (the ``POST /cycles`` endpoint). Cycles never overlap: a trigger
that arrives while a cycle is running is refused. Every cycle is reported
to a Notifier.

``collector-watch`` runs the watcher and the FastAPI app on one event loop
via uvicorn's programmatic API and FastAPI's lifespan.
"""

import asyncio
import signal
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from collector.config import AppSettings
from collector.logging import bind_cycle, clear_cycle, get_logger, setup_logging
from collector.main import run_cycle, validate_settings
from collector.models import Snapshot
from collector.notifier import LogNotifier, Notifier, TelegramNotifier
from collector.store.database import SnapshotDatabase
from collector.store.repository import SnapshotStore

logger = get_logger(__name__)


class CycleWatcher:
    """Periodic and on-demand cycle runner.

    Args:
        cycle: Runs one full cycle and returns the persisted snapshot.
        notifier: Receives start/success/failure events.
        period_seconds: Pause between periodic cycles.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[Snapshot]],
        notifier: Notifier,
        period_seconds: float = 900.0,
    ) -> None:
        self._cycle = cycle
        self._notifier = notifier
        self._period = period_seconds
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._pending_chat: str | None = None
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self.last_snapshot_at: int | None = None
        self.last_error: str | None = None
        self.completed = 0
        self.failed = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run_once(self, chat_id: str | None = None) -> Snapshot | None:
        """Run a cycle now unless one is already running."""
        if self._lock.locked():
            logger.info("cycle_already_running")
            return None

        async with self._lock:
            cycle_id = bind_cycle()
            started = time.monotonic()
            logger.info("watcher_cycle_started", cycle_id=cycle_id, chat_id=chat_id)
            await self._notifier.cycle_started(chat_id)
            try:
                snapshot = await self._cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                self.last_error = str(e) or type(e).__name__
                logger.exception("watcher_cycle_failed")
                await self._notifier.cycle_failed(self.last_error, chat_id)
                return None
            finally:
                clear_cycle()

            elapsed = time.monotonic() - started
            self.completed += 1
            self.last_snapshot_at = snapshot.at
            self.last_error = None
            await self._notifier.cycle_succeeded(snapshot, elapsed, chat_id)
            return snapshot

    def trigger(self, chat_id: str | None = None) -> bool:
        """Request an immediate cycle. False if one is already running."""
        if self.busy:
            return False
        self._pending_chat = chat_id
        self._wake.set()
        logger.info("cycle_triggered", chat_id=chat_id)
        return True

    async def start(self) -> None:
        if self._running:
            logger.warning("watcher_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("watcher_started", period_seconds=self._period)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("watcher_stopped")

    async def _loop(self) -> None:
        while self._running:
            chat_id, self._pending_chat = self._pending_chat, None
            self._wake.clear()
            await self.run_once(chat_id)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._period)
            except asyncio.TimeoutError:
                pass


def build_notifier(settings: AppSettings) -> Notifier:
    token = settings.notifier.telegram_bot_token.get_secret_value()
    if token:
        return TelegramNotifier(token, default_chat_id=settings.notifier.chat_id)
    return LogNotifier()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store for the API, start the watcher, and tear both down."""
    settings: AppSettings = app.state.settings
    watcher: CycleWatcher = app.state.watcher

    async with SnapshotDatabase(settings.store.path) as database:
        app.state.store = SnapshotStore(database)
        await watcher.start()
        logger.info("lifespan_started", host=settings.watcher.host, port=settings.watcher.port)
        yield
        await watcher.stop()
        await app.state.notifier.close()
    logger.info("collector_watch_stopped")


async def watch(settings: AppSettings | None = None) -> None:
    """Run the watcher, with the query API when enabled."""
    settings = settings or AppSettings()
    setup_logging(settings.log_level)
    validate_settings(settings)

    notifier = build_notifier(settings)
    watcher = CycleWatcher(
        lambda: run_cycle(settings),
        notifier,
        period_seconds=settings.watcher.period_seconds,
    )

    if settings.watcher.api_enabled:
        from collector.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.watcher = watcher
        app.state.notifier = notifier

        config = uvicorn.Config(
            app,
            host=settings.watcher.host,
            port=settings.watcher.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
        return

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await watcher.start()
    try:
        await stop.wait()
    finally:
        await watcher.stop()
        await notifier.close()


def main() -> None:
    """Synchronous entry point (``collector-watch``)."""
    asyncio.run(watch())


if __name__ == "__main__":
    main()
