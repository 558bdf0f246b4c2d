import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from config import settings
from db.cache import ListingCache, listing_cache
from db.models import Listing
from engine.normalizer import calculate_duration, normalize_records
from engine.sheet import sheet_client

log = logging.getLogger(__name__)

# Value the sheet fills in when nobody entered a duration.
PLACEHOLDER_DURATION = "6h 00m"


class RemoteListings(Protocol):
    async def list_all(self) -> list[dict] | None: ...

    async def add(self, listing: Listing) -> bool: ...

    async def delete(self, listing_id: str) -> bool: ...


def today_in_zone() -> str:
    return datetime.now(ZoneInfo(settings.timezone)).date().isoformat()


def backfill_duration(listing: Listing) -> Listing:
    if listing.duration == PLACEHOLDER_DURATION:
        listing.duration = calculate_duration(listing.departure_time, listing.arrival_time)
    return listing


class ListingStore:
    """All current listings, remote-authoritative with a local cache fallback."""

    def __init__(
        self,
        remote: RemoteListings,
        cache: ListingCache,
        today: Callable[[], str] = today_in_zone,
    ):
        self.remote = remote
        self.cache = cache
        self._today = today
        self._sequence = 0
        self._listings: list[Listing] = []

    @property
    def listings(self) -> list[Listing]:
        return list(self._listings)

    async def list(self) -> list[Listing]:
        self._sequence += 1
        token = self._sequence

        records = await self.remote.list_all()
        today = self._today()

        if records is not None:
            listings = [backfill_duration(item) for item in normalize_records(records)]
            active = [item for item in listings if item.date >= today]
            if token != self._sequence:
                log.info(f"Sync #{token} superseded by #{self._sequence}, not caching")
                return active
            await self.cache.write(active)
            self._listings = active
            log.info(f"Sync #{token}: {len(active)} active of {len(records)} remote rows")
            return active

        cached = [item for item in await self.cache.read() if item.date >= today]
        log.warning(f"Sync #{token}: remote unavailable, serving {len(cached)} cached listings")
        if token == self._sequence:
            self._listings = cached
        return cached

    async def add(self, listing: Listing) -> bool:
        success = await self.remote.add(listing)
        if success:
            log.info(f"Listing {listing.id} published")
            await self.list()
        else:
            log.error(f"Listing {listing.id} was not accepted by the sheet")
        return success

    async def delete(self, listing_id: str) -> bool:
        success = await self.remote.delete(listing_id)
        if success:
            log.info(f"Listing {listing_id} deleted")
            await self.list()
        else:
            log.error(f"Listing {listing_id} could not be deleted")
        return success

    async def get_by_id(self, listing_id: str) -> Listing | None:
        for listing in await self.list():
            if listing.id == listing_id:
                return listing
        return None


store = ListingStore(sheet_client, listing_cache)
