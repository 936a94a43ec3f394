"""Tests for TemporalBackfillResolver lookups, fills and reference deltas."""

import pytest

from collector.backfill import (
    DOMINANCE_PCT,
    MACRO_INDEX_PRICE,
    TemporalBackfillResolver,
    oi_cvd_fields,
    required_fields,
    symbol_fields,
)
from collector.models import LongShort, MacroIndex, SymbolMetricSet

NOW_MS = 1_700_000_000_000
HOUR_MS = 3600 * 1000


def _field(fields, path: str):
    return next(f for f in fields if f.path == path)


async def _seed(store, make_snapshot, rows) -> None:
    for at, overrides in rows:
        await store.insert(make_snapshot(at, **overrides))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestMostRecentValid:
    @pytest.mark.asyncio
    async def test_skips_newer_invalid_snapshots(self, store, make_snapshot) -> None:
        await _seed(
            store,
            make_snapshot,
            [
                (NOW_MS - 3 * HOUR_MS, {"dominance_pct": 51.0}),
                (NOW_MS - 2 * HOUR_MS, {"dominance_pct": 52.0}),
                (NOW_MS - HOUR_MS, {"dominance_pct": None}),
            ],
        )
        resolver = TemporalBackfillResolver(store)

        source = await resolver.most_recent_valid(DOMINANCE_PCT)

        assert source is not None
        assert source.at == NOW_MS - 2 * HOUR_MS

    @pytest.mark.asyncio
    async def test_zero_is_a_valid_value(self, store, make_snapshot) -> None:
        fields = symbol_fields("BTC")
        await _seed(
            store,
            make_snapshot,
            [(NOW_MS - HOUR_MS, {"per_symbol": {"BTC": SymbolMetricSet("BTC", pct24=0.0)}})],
        )
        resolver = TemporalBackfillResolver(store)

        source = await resolver.most_recent_valid(_field(fields, "perSymbolMetrics.BTC.pct24"))

        assert source is not None

    @pytest.mark.asyncio
    async def test_scan_is_bounded(self, store, make_snapshot) -> None:
        await _seed(
            store,
            make_snapshot,
            [
                (NOW_MS - 3 * HOUR_MS, {"dominance_pct": 51.0}),
                (NOW_MS - 2 * HOUR_MS, {}),
                (NOW_MS - HOUR_MS, {}),
            ],
        )
        resolver = TemporalBackfillResolver(store, scan_limit=2)

        assert await resolver.most_recent_valid(DOMINANCE_PCT) is None


class TestClosestValid:
    @pytest.mark.asyncio
    async def test_nearest_valid_to_target(self, store, make_snapshot) -> None:
        """Target t-24h: t-20h (4h away) beats t-50h (26h) and t+10h (34h)."""
        await _seed(
            store,
            make_snapshot,
            [
                (NOW_MS - 50 * HOUR_MS, {"dominance_pct": 50.0}),
                (NOW_MS - 24 * HOUR_MS, {"dominance_pct": None}),
                (NOW_MS - 20 * HOUR_MS, {"dominance_pct": 52.0}),
                (NOW_MS + 10 * HOUR_MS, {"dominance_pct": 60.0}),
            ],
        )
        resolver = TemporalBackfillResolver(store)

        source = await resolver.closest_valid(DOMINANCE_PCT, NOW_MS - 24 * HOUR_MS)

        assert source is not None
        assert source.at == NOW_MS - 20 * HOUR_MS

    @pytest.mark.asyncio
    async def test_earlier_wins_a_tie(self, store, make_snapshot) -> None:
        await _seed(
            store,
            make_snapshot,
            [
                (NOW_MS - 26 * HOUR_MS, {"dominance_pct": 50.0}),
                (NOW_MS - 22 * HOUR_MS, {"dominance_pct": 52.0}),
            ],
        )
        resolver = TemporalBackfillResolver(store)

        source = await resolver.closest_valid(DOMINANCE_PCT, NOW_MS - 24 * HOUR_MS)

        assert source is not None
        assert source.at == NOW_MS - 26 * HOUR_MS

    @pytest.mark.asyncio
    async def test_empty_window_falls_back_to_most_recent(self, store, make_snapshot) -> None:
        await _seed(
            store,
            make_snapshot,
            [
                (NOW_MS - 200 * HOUR_MS, {"dominance_pct": 48.0}),
                (NOW_MS - HOUR_MS, {"dominance_pct": 53.0}),
            ],
        )
        resolver = TemporalBackfillResolver(store, window_ms=2 * HOUR_MS)

        source = await resolver.closest_valid(DOMINANCE_PCT, NOW_MS - 100 * HOUR_MS)

        assert source is not None
        assert source.at == NOW_MS - HOUR_MS

    @pytest.mark.asyncio
    async def test_no_history_is_none(self, store) -> None:
        resolver = TemporalBackfillResolver(store)
        assert await resolver.closest_valid(DOMINANCE_PCT, NOW_MS) is None


# ---------------------------------------------------------------------------
# Fill
# ---------------------------------------------------------------------------


class TestFill:
    @pytest.mark.asyncio
    async def test_fills_missing_fields_and_marks_them_stale(
        self, store, make_snapshot
    ) -> None:
        prior_at = NOW_MS - HOUR_MS
        await _seed(
            store,
            make_snapshot,
            [
                (
                    prior_at,
                    {
                        "dominance_pct": 52.0,
                        "per_symbol": {
                            "BTC": SymbolMetricSet("BTC", price=64000.0, funding_now=0.0001)
                        },
                    },
                )
            ],
        )
        current = make_snapshot(
            NOW_MS, per_symbol={"BTC": SymbolMetricSet("BTC", price=65000.0)}
        )
        resolver = TemporalBackfillResolver(store)

        filled = await resolver.fill(current, required_fields(["BTC"], []))

        assert sorted(filled) == ["dominancePct", "perSymbolMetrics.BTC.fundingNow"]
        assert current.dominance_pct == 52.0
        assert current.per_symbol["BTC"].funding_now == 0.0001
        assert current.per_symbol["BTC"].price == 65000.0
        assert set(current.staleness) == set(filled)
        assert all(m.source_timestamp == prior_at for m in current.staleness.values())

    @pytest.mark.asyncio
    async def test_fields_without_history_stay_null(self, store, make_snapshot) -> None:
        current = make_snapshot(NOW_MS)
        resolver = TemporalBackfillResolver(store)

        filled = await resolver.fill(current, required_fields(["BTC"], ["BTC"]))

        assert filled == []
        assert current.staleness == {}
        assert current.dominance_pct is None

    @pytest.mark.asyncio
    async def test_long_short_is_filled_with_its_source_tag(self, store, make_snapshot) -> None:
        await _seed(
            store,
            make_snapshot,
            [
                (
                    NOW_MS - HOUR_MS,
                    {
                        "per_symbol": {
                            "ETH": SymbolMetricSet(
                                "ETH",
                                long_short=LongShort(58.0, 42.0, 1.38),
                                long_short_source="bybit_30m",
                            )
                        }
                    },
                )
            ],
        )
        current = make_snapshot(NOW_MS)
        resolver = TemporalBackfillResolver(store)

        filled = await resolver.fill(current, symbol_fields("ETH"))

        assert filled == ["perSymbolMetrics.ETH.longShort"]
        eth = current.per_symbol["ETH"]
        assert eth.long_short == LongShort(58.0, 42.0, 1.38)
        assert eth.long_short_source == "bybit_30m"

    @pytest.mark.asyncio
    async def test_oi_cvd_record_is_created_for_filled_values(
        self, store, make_snapshot
    ) -> None:
        prior = make_snapshot(NOW_MS - HOUR_MS)
        oi_cvd_fields("BTC")[0].set(prior, 1.5)
        await store.insert(prior)
        current = make_snapshot(NOW_MS)
        resolver = TemporalBackfillResolver(store)

        filled = await resolver.fill(current, oi_cvd_fields("BTC"))

        assert filled == ["oiCvd.BTC.oiChangePct"]
        assert current.oi_cvd["BTC"].oi_change_pct == 1.5
        assert current.oi_cvd["BTC"].cvd is None


# ---------------------------------------------------------------------------
# Reference deltas
# ---------------------------------------------------------------------------


class TestDeltaVsReference:
    @pytest.mark.asyncio
    async def test_percent_change_against_closest_day_old_value(
        self, store, make_snapshot
    ) -> None:
        await _seed(
            store,
            make_snapshot,
            [
                (NOW_MS - 25 * HOUR_MS, {"dominance_pct": 50.0}),
                (NOW_MS - 2 * HOUR_MS, {"dominance_pct": 54.0}),
            ],
        )
        resolver = TemporalBackfillResolver(store)

        delta = await resolver.delta_vs_reference(DOMINANCE_PCT, 55.0, NOW_MS)

        assert delta == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_macro_reference_uses_the_price(self, store, make_snapshot) -> None:
        await _seed(
            store,
            make_snapshot,
            [(NOW_MS - 24 * HOUR_MS, {"macro_index": MacroIndex(5000.0, None, "^GSPC")})],
        )
        resolver = TemporalBackfillResolver(store)

        delta = await resolver.delta_vs_reference(MACRO_INDEX_PRICE, 5100.0, NOW_MS)

        assert delta == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_zero_reference_is_null(self, store, make_snapshot) -> None:
        fields = symbol_fields("BTC")
        pct24 = _field(fields, "perSymbolMetrics.BTC.pct24")
        await _seed(
            store,
            make_snapshot,
            [(NOW_MS - 24 * HOUR_MS, {"per_symbol": {"BTC": SymbolMetricSet("BTC", pct24=0.0)}})],
        )
        resolver = TemporalBackfillResolver(store)

        assert await resolver.delta_vs_reference(pct24, 1.0, NOW_MS) is None

    @pytest.mark.asyncio
    async def test_missing_current_or_reference_is_null(self, store) -> None:
        resolver = TemporalBackfillResolver(store)
        assert await resolver.delta_vs_reference(DOMINANCE_PCT, None, NOW_MS) is None
        assert await resolver.delta_vs_reference(DOMINANCE_PCT, 55.0, NOW_MS) is None
