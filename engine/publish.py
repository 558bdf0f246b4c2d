import logging
import secrets
import string
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from db.models import Listing, TicketStatus, TicketType, TrainClass
from db.store import ListingStore
from engine.matcher import AIMatcher
from engine.normalizer import calculate_duration, format_time

log = logging.getLogger(__name__)

MAX_COMMENT_WORDS = 10
FLEXIBLE_DATE_DAYS = 2
_ID_ALPHABET = string.ascii_lowercase + string.digits


class ListingValidationError(ValueError):
    pass


@dataclass
class ListingDraft:
    type: TicketType = TicketType.OFFER
    train_number: str = ""
    train_name: str = ""
    from_station: str = ""
    to_station: str = ""
    date: str = ""
    departure_time: str = ""
    arrival_time: str = ""
    class_type: str = TrainClass.SL.value
    berth_type: str = "No Preference"
    price: float = 0
    comment: str = ""
    is_flexible_date: bool = False
    is_flexible_class: bool = False


def validate_draft(draft: ListingDraft) -> None:
    if not draft.train_number.isdigit() or len(draft.train_number) != 5:
        raise ListingValidationError("Valid 5-digit Train Number is mandatory.")
    if not draft.date:
        raise ListingValidationError("Travel Date is mandatory.")
    try:
        date.fromisoformat(draft.date)
    except ValueError:
        raise ListingValidationError("Travel Date must be YYYY-MM-DD.") from None
    if not draft.price or draft.price <= 0:
        raise ListingValidationError("Valid Price is mandatory.")
    if len(draft.comment.split()) > MAX_COMMENT_WORDS:
        raise ListingValidationError(f"Comment must be within {MAX_COMMENT_WORDS} words.")


def new_listing_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))


def build_listing(
    draft: ListingDraft,
    user_id: str,
    seller_name: str,
    user_contact: str = "",
) -> Listing:
    validate_draft(draft)
    departure = format_time(draft.departure_time)
    arrival = format_time(draft.arrival_time)
    return Listing(
        id=new_listing_id(),
        user_id=user_id,
        type=draft.type,
        train_name=draft.train_name or "Unknown",
        train_number=draft.train_number,
        from_station=draft.from_station,
        to_station=draft.to_station,
        date=draft.date,
        departure_time=departure,
        arrival_time=arrival,
        duration=calculate_duration(departure, arrival),
        class_type=draft.class_type,
        price=float(draft.price),
        status=TicketStatus.OPEN,
        user_contact=user_contact,
        seller_name=seller_name or "User",
        berth_type=draft.berth_type,
        comment=draft.comment or None,
        is_flexible_date=draft.is_flexible_date,
        is_flexible_class=draft.is_flexible_class,
        created_at=int(time.time() * 1000),
    )


def _dates_within(a: str, b: str, days: int) -> bool:
    try:
        return abs((date.fromisoformat(a) - date.fromisoformat(b)).days) <= days
    except ValueError:
        return False


def find_similar_offers(draft: ListingDraft, listings: list[Listing]) -> list[Listing]:
    """Open offers a REQUEST draft could be satisfied by."""
    boarding = draft.from_station.lower().strip()
    destination = draft.to_station.lower()

    matches = []
    for t in listings:
        if t.type != TicketType.OFFER or t.status != TicketStatus.OPEN:
            continue
        if t.from_station.lower().strip() != boarding:
            continue
        to_station = t.to_station.lower()
        if destination not in to_station and to_station not in destination:
            continue

        date_ok = t.date == draft.date or (
            draft.is_flexible_date
            and bool(draft.date)
            and _dates_within(t.date, draft.date, FLEXIBLE_DATE_DAYS)
        )
        class_ok = t.class_type == draft.class_type or draft.is_flexible_class
        if date_ok and class_ok:
            matches.append(t)
    return matches


def apply_parsed(draft: ListingDraft, parsed: dict[str, Any]) -> ListingDraft:
    """Merge AI-extracted fields into a draft, keeping existing values for gaps."""
    price = parsed.get("price")
    return replace(
        draft,
        type=TicketType.REQUEST if str(parsed.get("type", "")).upper() == "REQUEST" else TicketType.OFFER,
        train_number=str(parsed.get("trainNumber") or draft.train_number),
        train_name=parsed.get("trainName") or draft.train_name,
        from_station=parsed.get("fromStation") or draft.from_station,
        to_station=parsed.get("toStation") or draft.to_station,
        date=parsed.get("date") or draft.date,
        class_type=parsed.get("classType") or draft.class_type,
        price=price if isinstance(price, (int, float)) and price else draft.price,
        departure_time=parsed.get("departureTime") or draft.departure_time,
    )


class Publisher:
    def __init__(self, store: ListingStore, matcher: AIMatcher):
        self.store = store
        self.matcher = matcher

    async def parse(self, text: str, draft: ListingDraft | None = None) -> ListingDraft | None:
        parsed = await self.matcher.parse_ticket(text)
        if not parsed:
            return None
        return apply_parsed(draft or ListingDraft(), parsed)

    async def autofill(self, draft: ListingDraft) -> ListingDraft:
        """Fill train details from the schedule lookup, keeping what the user typed."""
        number = "".join(ch for ch in draft.train_number if ch.isdigit())
        if len(number) != 5:
            return draft

        info = await self.matcher.lookup_train(number)
        if info:
            draft = replace(
                draft,
                train_number=number,
                train_name=info.train_name or draft.train_name,
                from_station=draft.from_station or info.from_station or "",
                to_station=draft.to_station or info.to_station or "",
                departure_time=info.departure_time or draft.departure_time,
                arrival_time=info.arrival_time or draft.arrival_time,
            )
        else:
            log.info(f"No schedule found for train {number}")

        if len(draft.from_station) > 3 and len(draft.to_station) > 3:
            timings = await self.matcher.get_train_timings(
                number, draft.from_station, draft.to_station
            )
            if timings:
                departure, arrival = timings
                draft = replace(
                    draft,
                    departure_time=departure or draft.departure_time,
                    arrival_time=arrival or draft.arrival_time,
                )
        return draft

    async def similar_offers(self, draft: ListingDraft) -> list[Listing]:
        if draft.type != TicketType.REQUEST:
            return []
        return find_similar_offers(draft, await self.store.list())

    async def publish(
        self,
        draft: ListingDraft,
        user_id: str,
        seller_name: str,
        user_contact: str = "",
    ) -> tuple[Listing, bool]:
        listing = build_listing(draft, user_id, seller_name, user_contact)
        ok = await self.store.add(listing)
        return listing, ok
