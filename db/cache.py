import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol

import aiosqlite

from config import settings
from db.models import CACHE_SCHEMA, Listing

log = logging.getLogger(__name__)


class ListingCache(Protocol):
    async def read(self) -> list[Listing]: ...

    async def write(self, listings: list[Listing]) -> None: ...

    async def clear(self) -> None: ...


class MemoryListingCache:
    def __init__(self, listings: list[Listing] | None = None):
        self._listings: list[Listing] = list(listings or [])
        self.writes = 0

    async def read(self) -> list[Listing]:
        return list(self._listings)

    async def write(self, listings: list[Listing]) -> None:
        self._listings = list(listings)
        self.writes += 1

    async def clear(self) -> None:
        self._listings = []


class SqliteListingCache:
    """Single-slot cache: the whole listing set is stored as one JSON payload."""

    def __init__(self, db_path: Path | str | None = None, cache_key: str | None = None):
        path = db_path or settings.cache_path
        self.db_path = Path(path) if isinstance(path, str) else path
        self.cache_key = cache_key or settings.cache_key
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.executescript(CACHE_SCHEMA)
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Cache not connected")
        return self._connection

    async def read(self) -> list[Listing]:
        cursor = await self.conn.execute(
            "SELECT payload FROM listing_cache WHERE cache_key = ?", (self.cache_key,)
        )
        row = await cursor.fetchone()
        if not row:
            return []
        try:
            return [Listing.from_dict(item) for item in json.loads(row["payload"])]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.warning(f"Discarding unreadable listing cache: {e}")
            return []

    async def write(self, listings: list[Listing]) -> None:
        payload = json.dumps([listing.to_dict() for listing in listings], ensure_ascii=False)
        now = datetime.utcnow().isoformat()
        await self.conn.execute(
            """
            INSERT INTO listing_cache (cache_key, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(cache_key) DO UPDATE SET payload = ?, updated_at = ?
            """,
            (self.cache_key, payload, now, payload, now),
        )
        await self.conn.commit()

    async def clear(self) -> None:
        await self.conn.execute("DELETE FROM listing_cache WHERE cache_key = ?", (self.cache_key,))
        await self.conn.commit()


listing_cache = SqliteListingCache()
