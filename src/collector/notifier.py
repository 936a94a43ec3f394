"""Cycle status notifications.

The watcher reports start, success and failure of every cycle to a
Notifier. LogNotifier only writes log lines; TelegramNotifier also sends a
Bot API ``sendMessage``. Delivery is best-effort: a failed send is logged
and never affects the cycle.
"""

from abc import ABC, abstractmethod

from collector.exceptions import ProviderError
from collector.logging import get_logger
from collector.models import Snapshot
from collector.providers.http import HttpClient

logger = get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


def success_text(snapshot: Snapshot, elapsed_seconds: float) -> str:
    lines = [f"✅ Snapshot saved ({snapshot.iso_local_timestamp}, {elapsed_seconds:.1f}s)"]
    for symbol, metrics in snapshot.per_symbol.items():
        price = f"{metrics.price:,.2f}" if metrics.price is not None else "—"
        lines.append(f"{symbol}: {price}")
    if snapshot.dominance_pct is not None:
        lines.append(f"Dominance: {snapshot.dominance_pct:.2f}%")
    if snapshot.staleness:
        lines.append(f"Backfilled fields: {len(snapshot.staleness)}")
    return "\n".join(lines)


class Notifier(ABC):
    """Receives cycle lifecycle events."""

    @abstractmethod
    async def cycle_started(self, chat_id: str | None = None) -> None: ...

    @abstractmethod
    async def cycle_succeeded(
        self, snapshot: Snapshot, elapsed_seconds: float, chat_id: str | None = None
    ) -> None: ...

    @abstractmethod
    async def cycle_failed(self, error: str, chat_id: str | None = None) -> None: ...

    async def close(self) -> None:
        return None


class LogNotifier(Notifier):
    async def cycle_started(self, chat_id: str | None = None) -> None:
        logger.info("notify_cycle_started", chat_id=chat_id)

    async def cycle_succeeded(
        self, snapshot: Snapshot, elapsed_seconds: float, chat_id: str | None = None
    ) -> None:
        logger.info(
            "notify_cycle_succeeded",
            chat_id=chat_id,
            at=snapshot.at,
            elapsed_seconds=round(elapsed_seconds, 1),
        )

    async def cycle_failed(self, error: str, chat_id: str | None = None) -> None:
        logger.info("notify_cycle_failed", chat_id=chat_id, error=error)


class TelegramNotifier(Notifier):
    """Sends cycle status messages through the Telegram Bot API.

    Args:
        bot_token: Bot token; the notifier is inert when empty.
        default_chat_id: Chat used when an event carries no chat id.
        http: HTTP client; one is created (and owned) when omitted.
    """

    def __init__(
        self,
        bot_token: str,
        default_chat_id: str = "",
        http: HttpClient | None = None,
    ) -> None:
        self._token = bot_token
        self._default_chat_id = default_chat_id
        self._owns_http = http is None
        self._http = http or HttpClient(timeout=10.0)

    async def send(self, text: str, chat_id: str | None = None) -> bool:
        target = chat_id or self._default_chat_id
        if not self._token or not target:
            logger.debug("telegram_send_skipped", reason="no token or chat id")
            return False
        try:
            await self._http.post_json(
                f"{TELEGRAM_API_URL}/bot{self._token}/sendMessage",
                {"chat_id": target, "text": text, "disable_web_page_preview": True},
            )
        except ProviderError as e:
            logger.warning("telegram_send_failed", chat_id=target, error=str(e))
            return False
        return True

    async def cycle_started(self, chat_id: str | None = None) -> None:
        await self.send("⏳ Collecting market snapshot…", chat_id)

    async def cycle_succeeded(
        self, snapshot: Snapshot, elapsed_seconds: float, chat_id: str | None = None
    ) -> None:
        await self.send(success_text(snapshot, elapsed_seconds), chat_id)

    async def cycle_failed(self, error: str, chat_id: str | None = None) -> None:
        await self.send(f"❌ Snapshot failed: {error}", chat_id)

    async def close(self) -> None:
        if self._owns_http:
            await self._http.close()
