"""Serialized, paced and cached access to a quota-constrained provider.

One RateLimitedSource instance lives for one collection cycle. Within that
lifetime:

- identical (path, sorted params) requests hit upstream at most once; callers
  arriving while the request is in flight share its result,
- real requests go out one at a time, each starting no sooner than
  ``min_interval`` seconds after the previous one completed,
- a real request is attempted up to ``attempts`` times with ``retry_pause``
  between attempts; a request that fails every attempt raises and is not
  cached, so a later call may try again.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from collector.logging import get_logger

logger = get_logger(__name__)

Fetch = Callable[[str, dict[str, Any] | None], Awaitable[Any]]


class RateLimitedSource:
    """Request pipeline guarding one provider's rate budget.

    Args:
        fetch: Performs one real upstream request for (path, params).
        min_interval: Seconds between the end of one real request and the
            start of the next.
        attempts: Total attempts per real request.
        retry_pause: Seconds to wait between attempts.
        clock: Monotonic clock, injectable for tests.
        sleep: Async sleep, injectable for tests.
    """

    def __init__(
        self,
        fetch: Fetch,
        min_interval: float = 0.8,
        attempts: int = 2,
        retry_pause: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetch = fetch
        self._min_interval = min_interval
        self._attempts = max(1, attempts)
        self._retry_pause = retry_pause
        self._clock = clock
        self._sleep = sleep
        self._cache: dict[str, Any] = {}
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._lock = asyncio.Lock()
        self._last_call_at: float | None = None
        self.upstream_calls = 0

    @staticmethod
    def cache_key(path: str, params: dict[str, Any] | None = None) -> str:
        """Normalize a request to ``path?k1=v1&k2=v2`` with keys sorted."""
        if not params:
            return path
        query = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return f"{path}?{query}"

    async def request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Return the (possibly cached) result for path and params."""
        key = self.cache_key(path, params)
        if key in self._cache:
            logger.debug("rate_limited_cache_hit", key=key)
            return self._cache[key]

        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._run(key, path, params))
            self._inflight[key] = future
        # Shield so one cancelled caller does not cancel the shared request.
        return await asyncio.shield(future)

    async def _run(self, key: str, path: str, params: dict[str, Any] | None) -> Any:
        try:
            async with self._lock:
                await self._wait_for_slot()
                try:
                    data = await self._attempt(path, params)
                finally:
                    self._last_call_at = self._clock()
                self._cache[key] = data
                return data
        finally:
            self._inflight.pop(key, None)

    async def _wait_for_slot(self) -> None:
        if self._last_call_at is None:
            return
        elapsed = self._clock() - self._last_call_at
        wait = self._min_interval - elapsed
        if wait > 0:
            await self._sleep(wait)

    async def _attempt(self, path: str, params: dict[str, Any] | None) -> Any:
        last_error: Exception | None = None
        for attempt in range(1, self._attempts + 1):
            self.upstream_calls += 1
            try:
                return await self._fetch(path, params)
            except Exception as e:
                last_error = e
                logger.warning(
                    "rate_limited_request_failed",
                    path=path,
                    attempt=attempt,
                    attempts=self._attempts,
                    error=str(e),
                )
                if attempt < self._attempts:
                    await self._sleep(self._retry_pause)

        assert last_error is not None
        raise last_error
