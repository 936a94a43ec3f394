"""Fixed-pause retry wrapper for provider calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from collector.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 2,
    pause: float = 0.5,
    label: str = "",
) -> T:
    """Await ``fn()`` up to ``attempts`` times, sleeping ``pause`` seconds between.

    Re-raises the last exception when every attempt fails.
    """
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            logger.debug(
                "provider_retry",
                label=label,
                attempt=attempt,
                attempts=attempts,
                error=str(e),
            )
            if attempt < attempts:
                await asyncio.sleep(pause)

    assert last_error is not None
    raise last_error
