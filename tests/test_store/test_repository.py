"""Tests for SnapshotStore persistence and queries on a temp SQLite file."""

import pytest

from collector.models import (
    LongShort,
    OiCvdRecord,
    Snapshot,
    SymbolMetricSet,
    Verdict,
)

NOW_MS = 1_700_000_000_000
HOUR_MS = 3600 * 1000


class TestInsertAndLatest:
    @pytest.mark.asyncio
    async def test_empty_store(self, store) -> None:
        assert await store.latest() is None
        assert await store.closest(NOW_MS) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_document_survives_the_round_trip(self, store, make_snapshot) -> None:
        snapshot = make_snapshot(
            NOW_MS,
            per_symbol={
                "BTC": SymbolMetricSet(
                    symbol="BTC",
                    price=65000.5,
                    long_short=LongShort(60.0, 40.0, 1.5),
                    long_short_source="binance_global_1h",
                )
            },
            oi_cvd={
                "BTC": OiCvdRecord(
                    symbol="BTC",
                    period="5m",
                    limit=6,
                    window_label="30m",
                    oi_change_pct=1.2,
                    verdict=Verdict.ABSORPTION,
                )
            },
            dominance_pct=52.4,
        )
        snapshot.mark_stale("dominancePct", NOW_MS - HOUR_MS)

        row_id = await store.insert(snapshot)
        loaded = await store.latest()

        assert row_id > 0
        assert loaded is not None
        assert loaded.to_document() == snapshot.to_document()
        assert loaded.staleness["dominancePct"].source_timestamp == NOW_MS - HOUR_MS

    @pytest.mark.asyncio
    async def test_latest_is_the_newest(self, store, make_snapshot) -> None:
        for offset in (3, 1, 2):
            await store.insert(make_snapshot(NOW_MS - offset * HOUR_MS))

        latest = await store.latest()

        assert latest is not None
        assert latest.at == NOW_MS - HOUR_MS
        assert await store.count() == 3


class TestQueries:
    @pytest.mark.asyncio
    async def test_recent_is_newest_first_and_bounded(self, store, make_snapshot) -> None:
        for hours in range(5):
            await store.insert(make_snapshot(NOW_MS - hours * HOUR_MS))

        recent = await store.recent(3)

        assert [s.at for s in recent] == [NOW_MS, NOW_MS - HOUR_MS, NOW_MS - 2 * HOUR_MS]

    @pytest.mark.asyncio
    async def test_between_is_inclusive_and_ascending(self, store, make_snapshot) -> None:
        for hours in range(5):
            await store.insert(make_snapshot(NOW_MS - hours * HOUR_MS))

        rows = await store.between(NOW_MS - 3 * HOUR_MS, NOW_MS - HOUR_MS, 10)

        assert [s.at for s in rows] == [
            NOW_MS - 3 * HOUR_MS,
            NOW_MS - 2 * HOUR_MS,
            NOW_MS - HOUR_MS,
        ]

    @pytest.mark.asyncio
    async def test_closest_prefers_earlier_on_tie(self, store, make_snapshot) -> None:
        await store.insert(make_snapshot(NOW_MS - 2 * HOUR_MS))
        await store.insert(make_snapshot(NOW_MS))

        closest = await store.closest(NOW_MS - HOUR_MS)

        assert closest is not None
        assert closest.at == NOW_MS - 2 * HOUR_MS

    @pytest.mark.asyncio
    async def test_closest_picks_nearest(self, store, make_snapshot) -> None:
        for hours in (0, 10, 30):
            await store.insert(make_snapshot(NOW_MS - hours * HOUR_MS))

        closest = await store.closest(NOW_MS - 24 * HOUR_MS)

        assert closest is not None
        assert closest.at == NOW_MS - 30 * HOUR_MS


class TestRetention:
    @pytest.mark.asyncio
    async def test_insert_purges_expired_snapshots(self, store, make_snapshot) -> None:
        await store.insert(make_snapshot(NOW_MS - 30 * HOUR_MS, expire_at=NOW_MS - 6 * HOUR_MS))
        assert await store.count() == 1

        await store.insert(make_snapshot(NOW_MS, expire_at=NOW_MS + 24 * HOUR_MS))

        assert [s.at for s in await store.recent(10)] == [NOW_MS]

    @pytest.mark.asyncio
    async def test_purge_expired_returns_count(self, store, make_snapshot) -> None:
        await store.insert(make_snapshot(NOW_MS - HOUR_MS, expire_at=NOW_MS))
        assert await store.purge_expired(NOW_MS) == 1
        assert await store.count() == 0


class TestLenientDocuments:
    def test_missing_keys_load_as_none(self) -> None:
        snapshot = Snapshot.from_document(
            {
                "at": NOW_MS,
                "perSymbolMetrics": {"BTC": {"price": "bad", "fundingNow": 0.0001}},
                "oiCvd": {"BTC": {"verdict": {"emoji": "?", "label": "unknown"}}},
            }
        )
        btc = snapshot.per_symbol["BTC"]
        assert btc.price is None
        assert btc.funding_now == 0.0001
        assert btc.long_short is None
        assert snapshot.oi_cvd["BTC"].verdict is Verdict.NO_DATA
        assert snapshot.macro_index.price is None
        assert snapshot.staleness == {}
