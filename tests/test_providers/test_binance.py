"""Tests for BinanceFuturesClient response parsing.

The mirror router is mocked; each test feeds one canned body.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from collector.exceptions import ProviderError
from collector.providers.binance import BinanceFuturesClient, base_asset, futures_symbol


def _client(body=None, side_effect=None) -> tuple[BinanceFuturesClient, MagicMock]:
    rotating = MagicMock()
    rotating.call = AsyncMock(return_value=body, side_effect=side_effect)
    http = MagicMock()
    http.get_json = AsyncMock(return_value=body)
    return BinanceFuturesClient(rotating, http, retry_pause=0), rotating


class TestSymbols:
    def test_futures_symbol(self) -> None:
        assert futures_symbol("btc") == "BTCUSDT"
        assert futures_symbol("BTCUSDT") == "BTCUSDT"

    def test_base_asset(self) -> None:
        assert base_asset("ETHUSDT") == "ETH"
        assert base_asset("ETH") == "ETH"


class TestTickers:
    @pytest.mark.asyncio
    async def test_ticker_24h(self) -> None:
        client, _ = _client(
            {"lastPrice": "65000.5", "priceChangePercent": "-1.25", "quoteVolume": "1e9"}
        )
        ticker = await client.ticker_24h("BTCUSDT")
        assert ticker.price == 65000.5
        assert ticker.pct24 == -1.25
        assert ticker.vol24 == 1e9

    @pytest.mark.asyncio
    async def test_ticker_24h_rejects_non_object(self) -> None:
        client, _ = _client([])
        with pytest.raises(ProviderError):
            await client.ticker_24h("BTCUSDT")

    @pytest.mark.asyncio
    async def test_usdt_perpetuals_filters_contracts(self) -> None:
        client, _ = _client(
            {
                "symbols": [
                    {"symbol": "BTCUSDT", "status": "TRADING", "quoteAsset": "USDT",
                     "contractType": "PERPETUAL"},
                    {"symbol": "BTCUSDT_240329", "status": "TRADING", "quoteAsset": "USDT",
                     "contractType": "CURRENT_QUARTER"},
                    {"symbol": "ETHBUSD", "status": "TRADING", "quoteAsset": "BUSD",
                     "contractType": "PERPETUAL"},
                    {"symbol": "LUNAUSDT", "status": "SETTLING", "quoteAsset": "USDT",
                     "contractType": "PERPETUAL"},
                ]
            }
        )
        assert await client.usdt_perpetuals() == ["BTCUSDT"]


class TestFunding:
    @pytest.mark.asyncio
    async def test_funding_series_drops_zero_readings(self) -> None:
        client, rotating = _client(
            [{"fundingRate": "0.0001"}, {"fundingRate": "0"}, {"fundingRate": "0.0002"}]
        )
        assert await client.funding_series("BTCUSDT", limit=3) == [0.0001, 0.0002]
        assert rotating.call.await_args.args[2] == {"symbol": "BTCUSDT", "limit": 3}

    @pytest.mark.asyncio
    async def test_premium_index_zero_is_no_data(self) -> None:
        client, _ = _client({"lastFundingRate": "0.00000000"})
        assert await client.premium_index_funding("BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_premium_index_value(self) -> None:
        client, _ = _client({"lastFundingRate": "0.00012"})
        assert await client.premium_index_funding("BTCUSDT") == 0.00012


class TestLongShort:
    @pytest.mark.asyncio
    async def test_global_prefers_account_shares(self) -> None:
        client, _ = _client(
            [
                {"longAccount": "0.5", "shortAccount": "0.5", "longShortRatio": "1.0"},
                {"longAccount": "0.62", "shortAccount": "0.38", "longShortRatio": "1.6316"},
            ]
        )
        value = await client.global_long_short("BTCUSDT", "1h")
        assert value is not None
        assert value.long_pct == 62.0
        assert value.short_pct == 38.0
        assert value.ratio == 1.63

    @pytest.mark.asyncio
    async def test_empty_rows_is_no_data(self) -> None:
        client, _ = _client([])
        assert await client.top_accounts_long_short("BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_top_positions_from_ratio(self) -> None:
        client, _ = _client([{"longShortRatio": "1.0"}])
        value = await client.top_positions_long_short("BTCUSDT")
        assert value is not None
        assert value.long_pct == 50.0


class TestOpenInterestAndFlow:
    @pytest.mark.asyncio
    async def test_open_interest_change(self) -> None:
        client, _ = _client(
            [
                {"sumOpenInterestValue": "100"},
                {"sumOpenInterestValue": "bad"},
                {"sumOpenInterestValue": "105"},
            ]
        )
        assert await client.open_interest_change("BTCUSDT", "5m", 6) == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_taker_cvd(self) -> None:
        client, _ = _client(
            [{"buyVol": "10", "sellVol": "4"}, {"buyVol": "1", "sellVol": "3"}]
        )
        result = await client.taker_cvd("BTCUSDT", "5m", 6)
        assert result is not None
        assert result.cvd == pytest.approx(4.0)
        assert result.delta_last == pytest.approx(-2.0)

    @pytest.mark.asyncio
    async def test_window_calls_are_retried(self) -> None:
        client, rotating = _client(
            side_effect=[ProviderError("all down"), [{"sumOpenInterestValue": "1"}]]
        )
        assert await client.open_interest_change("BTCUSDT", "5m", 6) == 0.0
        assert rotating.call.await_count == 2
