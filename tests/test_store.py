"""
Tests for the synchronized listing store and its cache ports.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from db.cache import MemoryListingCache, SqliteListingCache
from db.models import Listing, TicketType
from db.store import ListingStore, backfill_duration
from engine.normalizer import normalize_record

TODAY = "2030-01-10"


def row(id, date="2030-01-15", **extra):
    data = {
        "id": id,
        "trainNumber": "12951",
        "trainName": "Rajdhani Express",
        "fromStation": "Mumbai Central",
        "toStation": "New Delhi",
        "date": date,
        "departureTime": "17:00",
        "arrivalTime": "08:32",
        "classType": "3A",
        "price": 1500,
    }
    data.update(extra)
    return data


def listing(id, date="2030-01-15", **extra) -> Listing:
    return normalize_record(row(id, date, **extra))


class FakeRemote:
    def __init__(self, rows=None):
        self.rows = rows
        self.add_ok = True
        self.delete_ok = True
        self.list_calls = 0

    async def list_all(self):
        self.list_calls += 1
        return None if self.rows is None else list(self.rows)

    async def add(self, item):
        if self.add_ok:
            self.rows = (self.rows or []) + [item.to_dict()]
        return self.add_ok

    async def delete(self, listing_id):
        if self.delete_ok:
            self.rows = [r for r in self.rows or [] if r["id"] != listing_id]
        return self.delete_ok


def make_store(rows=None, cached=None):
    remote = FakeRemote(rows)
    cache = MemoryListingCache(cached)
    return ListingStore(remote, cache, today=lambda: TODAY), remote, cache


class TestList:
    def test_past_dates_excluded(self):
        store, _, cache = make_store([row("a", "2030-01-01"), row("b", "2030-01-20")])

        result = asyncio.run(store.list())

        assert [t.id for t in result] == ["b"]
        assert [t.id for t in asyncio.run(cache.read())] == ["b"]

    def test_today_is_kept(self):
        store, _, _ = make_store([row("a", TODAY)])
        assert [t.id for t in asyncio.run(store.list())] == ["a"]

    def test_remote_replaces_cache(self):
        store, _, cache = make_store([row("fresh")], cached=[listing("stale")])

        result = asyncio.run(store.list())

        assert [t.id for t in result] == ["fresh"]
        assert [t.id for t in store.listings] == ["fresh"]
        assert cache.writes == 1

    def test_confirmed_empty_is_authoritative(self):
        store, _, cache = make_store([], cached=[listing("old")])

        assert asyncio.run(store.list()) == []
        assert asyncio.run(cache.read()) == []

    def test_failure_falls_back_to_cache(self):
        cached = [listing("a", "2030-01-01"), listing("b"), listing("c")]
        store, _, cache = make_store(None, cached=cached)

        result = asyncio.run(store.list())

        assert [t.id for t in result] == ["b", "c"]
        assert cache.writes == 0

    def test_failure_with_empty_cache(self):
        store, _, _ = make_store(None)
        assert asyncio.run(store.list()) == []

    def test_placeholder_duration_backfilled(self):
        store, _, _ = make_store([row("a", duration="6h 00m"), row("b", duration="16h 10m")])

        result = {t.id: t for t in asyncio.run(store.list())}

        assert result["a"].duration == "15h 32m"
        assert result["b"].duration == "16h 10m"

    def test_stale_response_does_not_overwrite(self):
        class SlowFirstRemote(FakeRemote):
            def __init__(self):
                super().__init__()
                self.release = asyncio.Event()

            async def list_all(self):
                self.list_calls += 1
                if self.list_calls == 1:
                    await self.release.wait()
                    return [row("old")]
                return [row("new")]

        remote = SlowFirstRemote()
        cache = MemoryListingCache()
        store = ListingStore(remote, cache, today=lambda: TODAY)

        async def run():
            slow = asyncio.create_task(store.list())
            await asyncio.sleep(0)
            fast = await store.list()
            remote.release.set()
            return await slow, fast

        slow, fast = asyncio.run(run())

        assert [t.id for t in fast] == ["new"]
        assert [t.id for t in slow] == ["old"]
        assert [t.id for t in store.listings] == ["new"]
        assert cache.writes == 1
        assert [t.id for t in asyncio.run(cache.read())] == ["new"]


class TestMutations:
    def test_add_resyncs(self):
        store, remote, _ = make_store([row("a")])
        new = listing("n1", type="REQUEST")

        ok = asyncio.run(store.add(new))

        assert ok is True
        assert remote.list_calls == 1
        ids = [t.id for t in store.listings]
        assert "n1" in ids
        assert next(t for t in store.listings if t.id == "n1").type == TicketType.REQUEST

    def test_add_failure_skips_resync(self):
        store, remote, _ = make_store([row("a")])
        remote.add_ok = False

        assert asyncio.run(store.add(listing("n1"))) is False
        assert remote.list_calls == 0

    def test_delete_resyncs(self):
        store, remote, _ = make_store([row("a"), row("b")])
        asyncio.run(store.list())

        assert asyncio.run(store.delete("a")) is True
        assert [t.id for t in store.listings] == ["b"]
        assert remote.list_calls == 2

    def test_get_by_id_goes_through_list(self):
        store, remote, _ = make_store([row("a"), row("b")])

        found = asyncio.run(store.get_by_id("b"))
        missing = asyncio.run(store.get_by_id("zzz"))

        assert found is not None and found.id == "b"
        assert missing is None
        assert remote.list_calls == 2


class TestBackfill:
    def test_backfill_only_placeholder(self):
        item = listing("a", duration="6h 00m")
        assert backfill_duration(item).duration == "15h 32m"

        item = listing("b", duration="2h 00m")
        assert backfill_duration(item).duration == "2h 00m"


class TestSqliteCache:
    def test_round_trip(self, tmp_path):
        async def run():
            cache = SqliteListingCache(tmp_path / "cache.db", cache_key="test")
            await cache.connect()
            try:
                assert await cache.read() == []
                await cache.write([listing("a"), listing("b", comment="window seat")])
                await cache.write([listing("b", comment="window seat")])
                stored = await cache.read()
                await cache.clear()
                cleared = await cache.read()
            finally:
                await cache.close()
            return stored, cleared

        stored, cleared = asyncio.run(run())

        assert [t.id for t in stored] == ["b"]
        assert stored[0].comment == "window seat"
        assert cleared == []

    def test_corrupt_payload_reads_empty(self, tmp_path):
        async def run():
            cache = SqliteListingCache(tmp_path / "cache.db", cache_key="test")
            await cache.connect()
            try:
                await cache.conn.execute(
                    "INSERT INTO listing_cache (cache_key, payload, updated_at) VALUES (?, ?, ?)",
                    ("test", "{not json", "now"),
                )
                await cache.conn.commit()
                return await cache.read()
            finally:
                await cache.close()

        assert asyncio.run(run()) == []
