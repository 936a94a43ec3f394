"""Tests for RateLimitedSource pacing, dedupe and caching.

Time is simulated: the fake clock only advances when the source sleeps or
when a fake upstream call "takes" time, so spacing assertions are exact.
"""

import asyncio
from typing import Any

import pytest

from collector.exceptions import ProviderError
from collector.providers.rate_limited import RateLimitedSource


class FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeUpstream:
    """Records (path, start, end) per real call; each call takes 0.1s."""

    def __init__(self, fake_time: FakeTime, failures: int = 0) -> None:
        self._time = fake_time
        self.failures = failures
        self.calls: list[tuple[str, float, float]] = []

    async def fetch(self, path: str, params: dict[str, Any] | None) -> Any:
        start = self._time.now
        await asyncio.sleep(0)
        self._time.now += 0.1
        self.calls.append((path, start, self._time.now))
        if self.failures > 0:
            self.failures -= 1
            raise ProviderError(f"{path} failed")
        return {"path": path, "params": params}


def _source(fake_time: FakeTime, upstream: FakeUpstream, **kwargs: Any) -> RateLimitedSource:
    return RateLimitedSource(
        upstream.fetch,
        min_interval=kwargs.pop("min_interval", 0.8),
        attempts=kwargs.pop("attempts", 2),
        retry_pause=kwargs.pop("retry_pause", 0.5),
        clock=fake_time.clock,
        sleep=fake_time.sleep,
    )


# ---------------------------------------------------------------------------
# Cache key
# ---------------------------------------------------------------------------


class TestCacheKey:
    def test_params_are_sorted(self) -> None:
        assert RateLimitedSource.cache_key("/p", {"b": 1, "a": 2}) == "/p?a=2&b=1"

    def test_no_params_is_the_path(self) -> None:
        assert RateLimitedSource.cache_key("/p") == "/p"
        assert RateLimitedSource.cache_key("/p", {}) == "/p"


# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------


class TestPacing:
    @pytest.mark.asyncio
    async def test_sequential_calls_are_spaced(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time)
        source = _source(fake_time, upstream)

        await source.request("/a")
        await source.request("/b")

        (_, _, first_end), (_, second_start, _) = upstream.calls
        assert second_start - first_end >= 0.8 - 1e-9

    @pytest.mark.asyncio
    async def test_concurrent_distinct_calls_are_serialized_and_spaced(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time)
        source = _source(fake_time, upstream)

        await asyncio.gather(*(source.request(f"/p{i}") for i in range(4)))

        assert len(upstream.calls) == 4
        for (_, _, prev_end), (_, start, _) in zip(upstream.calls, upstream.calls[1:]):
            assert start >= prev_end
            assert start - prev_end >= 0.8 - 1e-9

    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time)
        source = _source(fake_time, upstream)

        await source.request("/a")
        assert fake_time.sleeps == []


# ---------------------------------------------------------------------------
# Dedupe and caching
# ---------------------------------------------------------------------------


class TestDedupe:
    @pytest.mark.asyncio
    async def test_concurrent_identical_calls_hit_upstream_once(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time)
        source = _source(fake_time, upstream)

        results = await asyncio.gather(
            source.request("/global", {"a": 1, "b": 2}),
            source.request("/global", {"b": 2, "a": 1}),
            source.request("/global", {"a": 1, "b": 2}),
        )

        assert len(upstream.calls) == 1
        assert source.upstream_calls == 1
        assert results[0] == results[1] == results[2]

    @pytest.mark.asyncio
    async def test_completed_result_is_cached(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time)
        source = _source(fake_time, upstream)

        first = await source.request("/global")
        second = await source.request("/global")

        assert first == second
        assert len(upstream.calls) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_retries_then_raises(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time, failures=5)
        source = _source(fake_time, upstream, attempts=2, retry_pause=0.5)

        with pytest.raises(ProviderError):
            await source.request("/global")

        assert len(upstream.calls) == 2
        assert 0.5 in fake_time.sleeps

    @pytest.mark.asyncio
    async def test_second_attempt_success_is_returned(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time, failures=1)
        source = _source(fake_time, upstream, attempts=2)

        result = await source.request("/global")

        assert result["path"] == "/global"
        assert len(upstream.calls) == 2

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time, failures=2)
        source = _source(fake_time, upstream, attempts=2)

        with pytest.raises(ProviderError):
            await source.request("/global")
        result = await source.request("/global")

        assert result["path"] == "/global"
        assert len(upstream.calls) == 3

    @pytest.mark.asyncio
    async def test_waiters_on_a_failed_request_all_see_the_error(self) -> None:
        fake_time = FakeTime()
        upstream = FakeUpstream(fake_time, failures=10)
        source = _source(fake_time, upstream, attempts=1)

        results = await asyncio.gather(
            source.request("/global"),
            source.request("/global"),
            return_exceptions=True,
        )

        assert all(isinstance(r, ProviderError) for r in results)
        assert len(upstream.calls) == 1
