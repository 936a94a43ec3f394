"""Tests for RotatingEndpointClient mirror routing."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from collector.exceptions import AllBasesExhausted, ProviderError
from collector.providers.rotating import RotatingEndpointClient

BASES = ("https://a.example", "https://b.example/", "https://c.example")


def _http(*responses) -> MagicMock:
    http = MagicMock()
    http.get_json = AsyncMock(side_effect=list(responses))
    return http


class TestRotatingEndpointClient:
    @pytest.mark.asyncio
    async def test_first_success_wins(self) -> None:
        http = _http({"ok": 1})
        client = RotatingEndpointClient(http)

        assert await client.call(BASES, "/v1/x") == {"ok": 1}
        http.get_json.assert_awaited_once()
        assert http.get_json.await_args.args[0] == "https://a.example/v1/x"

    @pytest.mark.asyncio
    async def test_failed_base_moves_to_next_in_order(self) -> None:
        http = _http(ProviderError("down"), {"ok": 2})
        client = RotatingEndpointClient(http)

        assert await client.call(BASES, "/v1/x", {"symbol": "BTCUSDT"}) == {"ok": 2}
        urls = [c.args[0] for c in http.get_json.await_args_list]
        assert urls == ["https://a.example/v1/x", "https://b.example/v1/x"]

    @pytest.mark.asyncio
    async def test_rejected_body_counts_as_failure(self) -> None:
        http = _http({"code": -1}, [1, 2, 3])
        client = RotatingEndpointClient(http)

        result = await client.call(BASES, "/v1/x", accept=lambda d: isinstance(d, list))
        assert result == [1, 2, 3]
        assert http.get_json.await_count == 2

    @pytest.mark.asyncio
    async def test_all_bases_failing_raises(self) -> None:
        http = _http(ProviderError("1"), ProviderError("2"), ProviderError("3"))
        client = RotatingEndpointClient(http)

        with pytest.raises(AllBasesExhausted) as exc_info:
            await client.call(BASES, "/v1/x")

        assert exc_info.value.attempted == 3
        assert exc_info.value.path == "/v1/x"
        assert isinstance(exc_info.value, ProviderError)
