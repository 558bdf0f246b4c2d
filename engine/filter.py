from datetime import date

from db.models import (
    Listing,
    MatchStrength,
    RouteMatches,
    SearchCriteria,
    SortKey,
    TicketStatus,
    TicketType,
)

# Below this length a route string is too ambiguous for the substring fallback.
MIN_ROUTE_FALLBACK_LENGTH = 4


def filter_open(listings: list[Listing]) -> list[Listing]:
    return [t for t in listings if t.status == TicketStatus.OPEN]


def matches_text(listing: Listing, query: str) -> bool:
    q = query.lower()
    return (
        q in listing.train_name.lower()
        or q in listing.train_number.lower()
        or q in listing.from_station.lower()
        or q in listing.to_station.lower()
    )


def filter_search(
    listings: list[Listing], query: str, semantic_ids: set[str] | None
) -> list[Listing]:
    if not query:
        return listings

    text_matches = [t for t in listings if matches_text(t, query)]
    if semantic_ids is None:
        return text_matches

    combined = {t.id: t for t in text_matches}
    for t in listings:
        if t.id in semantic_ids and t.id not in combined:
            combined[t.id] = t
    return list(combined.values())


def matches_route_substring(listing: Listing, origin: str, destination: str) -> bool:
    return (
        origin.lower() in listing.from_station.lower()
        and destination.lower() in listing.to_station.lower()
    )


def filter_route(
    listings: list[Listing],
    origin: str,
    destination: str,
    route_matches: RouteMatches,
    match_filter: MatchStrength,
    pending: bool = False,
) -> list[Listing]:
    if origin and destination:
        if pending:
            return listings
        if match_filter == MatchStrength.EXACT:
            return [t for t in listings if t.id in route_matches.exact]
        if match_filter == MatchStrength.PARTIAL:
            return [t for t in listings if t.id in route_matches.partial]

        valid_ids = route_matches.exact | route_matches.partial
        if valid_ids:
            return [t for t in listings if t.id in valid_ids]
        if (
            len(origin) >= MIN_ROUTE_FALLBACK_LENGTH
            and len(destination) >= MIN_ROUTE_FALLBACK_LENGTH
        ):
            return [t for t in listings if matches_route_substring(t, origin, destination)]
        return listings

    if origin:
        return [t for t in listings if origin.lower() in t.from_station.lower()]
    if destination:
        return [t for t in listings if destination.lower() in t.to_station.lower()]
    return listings


def filter_type(listings: list[Listing], ticket_type: TicketType | None) -> list[Listing]:
    if ticket_type is None:
        return listings
    return [t for t in listings if t.type == ticket_type]


def matches_class(listing: Listing, classes: set[str]) -> bool:
    if listing.class_type in classes:
        return True
    return listing.type == TicketType.REQUEST and listing.is_flexible_class


def filter_classes(listings: list[Listing], classes: set[str]) -> list[Listing]:
    if not classes:
        return listings
    return [t for t in listings if matches_class(t, classes)]


def filter_date(listings: list[Listing], travel_date: str | None) -> list[Listing]:
    if not travel_date:
        return listings
    return [t for t in listings if t.date == travel_date]


def filter_owner(
    listings: list[Listing], my_listings_only: bool, viewer_id: str | None
) -> list[Listing]:
    if not my_listings_only or not viewer_id:
        return listings
    return [t for t in listings if t.user_id == viewer_id]


def _date_key(listing: Listing) -> date:
    try:
        return date.fromisoformat(listing.date)
    except ValueError:
        return date.max


def sort_listings(listings: list[Listing], sort: SortKey) -> list[Listing]:
    if sort == SortKey.PRICE_ASC:
        return sorted(listings, key=lambda t: t.price)
    if sort == SortKey.PRICE_DESC:
        return sorted(listings, key=lambda t: -t.price)
    return sorted(listings, key=_date_key)


def run_pipeline(listings: list[Listing], criteria: SearchCriteria) -> list[Listing]:
    result = filter_open(listings)
    result = filter_search(result, criteria.query, criteria.semantic_ids)
    result = filter_route(
        result,
        criteria.route_from,
        criteria.route_to,
        criteria.route_matches,
        criteria.match_filter,
        pending=criteria.route_pending,
    )
    result = filter_type(result, criteria.ticket_type)
    result = filter_classes(result, criteria.classes)
    result = filter_date(result, criteria.date)
    result = filter_owner(result, criteria.my_listings_only, criteria.viewer_id)
    return sort_listings(result, criteria.sort)


def classify_match(listing_id: str, route_matches: RouteMatches) -> MatchStrength | None:
    if listing_id in route_matches.exact:
        return MatchStrength.EXACT
    if listing_id in route_matches.partial:
        return MatchStrength.PARTIAL
    return None
