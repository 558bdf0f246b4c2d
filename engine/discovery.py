import asyncio
import logging
from typing import Protocol

from config import settings
from db.models import (
    Listing,
    MatchStrength,
    RouteMatches,
    SearchCriteria,
    SortKey,
    TicketType,
)
from engine.filter import classify_match, run_pipeline

log = logging.getLogger(__name__)


class ListingSource(Protocol):
    async def list(self) -> list[Listing]: ...


class Matcher(Protocol):
    async def find_matches(self, query: str, listings: list[Listing]) -> list[str]: ...

    async def analyze_route(
        self, origin: str, destination: str, tickets: list[dict[str, str]]
    ) -> RouteMatches: ...


def route_payload(listings: list[Listing]) -> list[dict[str, str]]:
    return [
        {"id": t.id, "trainNumber": t.train_number, "from": t.from_station, "to": t.to_station}
        for t in listings
    ]


class DiscoveryEngine:
    """Holds one viewer's search state and produces the visible result set.

    Route classification runs out-of-band after a debounce delay. Each new
    cycle bumps a generation counter; a cycle whose generation is no longer
    current neither calls the collaborator nor applies a late response.
    """

    def __init__(
        self,
        store: ListingSource,
        matcher: Matcher,
        viewer_id: str | None = None,
        debounce_seconds: float | None = None,
    ):
        self.store = store
        self.matcher = matcher
        self.debounce_seconds = (
            settings.route_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.criteria = SearchCriteria(viewer_id=viewer_id)
        self.listings: list[Listing] = []
        self._route_generation = 0
        self._route_task: asyncio.Task | None = None

    async def refresh(self) -> list[Listing]:
        self.listings = await self.store.list()
        # A new listing set needs a new classification.
        if self.criteria.route_from and self.criteria.route_to:
            self.set_route(self.criteria.route_from, self.criteria.route_to)
        return self.listings

    # === Search ===

    def set_query(self, query: str) -> None:
        self.criteria.query = query.strip()

    async def submit_search(self, query: str) -> None:
        self.set_query(query)
        if not self.criteria.query:
            return
        try:
            ids = await self.matcher.find_matches(self.criteria.query, self.listings)
        except Exception as e:
            log.error(f"Semantic search failed: {e!r}")
            ids = []
        self.criteria.semantic_ids = set(ids)

    def clear_search(self) -> None:
        self.criteria.query = ""
        self.criteria.semantic_ids = None

    # === Route ===

    def set_route(self, origin: str, destination: str) -> None:
        self.criteria.route_from = origin.strip()
        self.criteria.route_to = destination.strip()
        self._route_generation += 1
        self.criteria.route_pending = False

        if not self.criteria.route_from or not self.criteria.route_to:
            self.criteria.route_matches = RouteMatches()
            self.criteria.match_filter = MatchStrength.ALL
            return

        generation = self._route_generation
        self._route_task = asyncio.get_running_loop().create_task(
            self._debounced_classification(generation)
        )

    def clear_route(self) -> None:
        self.set_route("", "")

    async def _debounced_classification(self, generation: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if generation != self._route_generation:
            return
        await self._classify(generation)

    async def _classify(self, generation: int) -> None:
        origin, destination = self.criteria.route_from, self.criteria.route_to
        self.criteria.route_pending = True
        try:
            matches = await self.matcher.analyze_route(
                origin, destination, route_payload(self.listings)
            )
        except Exception as e:
            log.error(f"Route classification failed: {e!r}")
            matches = RouteMatches()

        if generation != self._route_generation:
            log.debug(f"Discarding route classification #{generation} for {origin}->{destination}")
            return
        self.criteria.route_matches = matches
        self.criteria.route_pending = False
        log.info(
            f"Route {origin}->{destination}: {len(matches.exact)} exact, {len(matches.partial)} partial"
        )

    async def classify_route(self) -> None:
        """Classify the current route now, without waiting for the debounce."""
        if not self.criteria.route_from or not self.criteria.route_to:
            return
        self._route_generation += 1
        await self._classify(self._route_generation)

    async def settle(self) -> None:
        if self._route_task:
            await self._route_task

    # === Filters ===

    def set_match_filter(self, match_filter: MatchStrength) -> None:
        if match_filter != MatchStrength.ALL and self.criteria.match_filter == match_filter:
            match_filter = MatchStrength.ALL
        self.criteria.match_filter = match_filter

    def set_type(self, ticket_type: TicketType | None) -> None:
        self.criteria.ticket_type = ticket_type

    def toggle_class(self, class_type: str) -> None:
        if class_type in self.criteria.classes:
            self.criteria.classes.discard(class_type)
        else:
            self.criteria.classes.add(class_type)

    def set_date(self, travel_date: str | None) -> None:
        self.criteria.date = travel_date or None

    def set_my_listings(self, enabled: bool) -> None:
        self.criteria.my_listings_only = enabled

    def set_sort(self, sort: SortKey) -> None:
        self.criteria.sort = sort

    def reset(self) -> None:
        self._route_generation += 1
        self.criteria = SearchCriteria(viewer_id=self.criteria.viewer_id)

    # === Results ===

    def results(self) -> list[Listing]:
        return run_pipeline(self.listings, self.criteria)

    def match_type(self, listing_id: str) -> MatchStrength | None:
        return classify_match(listing_id, self.criteria.route_matches)

    @property
    def dates_with_listings(self) -> set[str]:
        return {t.date for t in self.listings}
