import logging
import re
import time
from datetime import datetime
from typing import Any, Mapping
from zoneinfo import ZoneInfo

from config import settings
from db.models import (
    PLACEHOLDER_TIME,
    ZERO_DURATION,
    Listing,
    TicketStatus,
    TicketType,
    TrainClass,
)

log = logging.getLogger(__name__)

# Canonical key -> normalized source keys accepted when the canonical one is missing.
# Lookup order: exact key, normalized key, then these aliases.
FIELD_ALIASES: dict[str, list[str]] = {
    "trainNumber": ["trainno", "no", "number", "trainnumber", "slno", "trainnum"],
    "fromStation": ["source", "from", "origin", "start", "boarding", "src"],
    "toStation": ["destination", "to", "dest", "end", "arrival", "dst"],
    "classType": ["class", "coach", "berth", "classtype", "cl"],
    "userContact": ["phone", "contact", "mobile", "whatsapp", "phonenumber"],
    "sellerName": ["name", "seller", "user", "postedby", "nameofseller"],
    "price": ["price", "fare", "cost", "amount", "rate"],
    "departureTime": ["dep", "deptime", "departure", "starttime"],
    "arrivalTime": ["arr", "arrtime", "arrival", "endtime"],
    "duration": ["dur", "traveltime", "time", "totaltime"],
}

_TIME_PREFIX = re.compile(r"^(\d{1,2}):(\d{2})")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NON_NUMERIC = re.compile(r"[^\d.]")


def normalize_key(key: str) -> str:
    return _NON_ALNUM.sub("", str(key).lower())


def get_flex_value(record: Mapping[str, Any], key: str) -> Any:
    if not record:
        return None
    if key in record:
        return record[key]

    target = normalize_key(key)
    for k in record:
        if normalize_key(k) == target:
            return record[k]

    aliases = FIELD_ALIASES.get(key)
    if aliases:
        for k in record:
            if normalize_key(k) in aliases:
                return record[k]
    return None


def _zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=_zone())
    return parsed.astimezone(_zone())


def format_time(value: Any) -> str:
    if not value:
        return PLACEHOLDER_TIME
    text = str(value).strip()
    if "T" in text:
        parsed = _parse_timestamp(text)
        if parsed:
            return parsed.strftime("%H:%M")
    match = _TIME_PREFIX.match(text)
    if match:
        return f"{match.group(1).zfill(2)}:{match.group(2)}"
    return PLACEHOLDER_TIME if text in ("undefined", "null") else text


def format_date(value: Any) -> str:
    text = str(value or "")
    if isinstance(value, str) and "T" in value:
        parsed = _parse_timestamp(value.strip())
        if parsed:
            return parsed.date().isoformat()
    return text.split("T")[0]


def parse_price(value: Any) -> float:
    cleaned = _NON_NUMERIC.sub("", str(value or 0))
    try:
        return float(cleaned) if cleaned else 0.0
    except ValueError:
        return 0.0


def parse_flag(value: Any) -> bool:
    return str(value).lower() == "true"


def parse_ticket_type(value: Any) -> TicketType:
    return TicketType.REQUEST if "REQ" in str(value).upper() else TicketType.OFFER


def parse_status(value: Any) -> TicketStatus:
    """Absent status means OPEN; an unrecognized one is never discoverable."""
    if value is None or not str(value).strip():
        return TicketStatus.OPEN
    try:
        return TicketStatus(str(value).strip().upper())
    except ValueError:
        return TicketStatus.CLOSED


def calculate_duration(departure: str | None, arrival: str | None) -> str:
    if not departure or not arrival or ":" not in departure or ":" not in arrival:
        return ZERO_DURATION
    try:
        h1, m1 = (int(p) for p in departure.split(":")[:2])
        h2, m2 = (int(p) for p in arrival.split(":")[:2])
    except ValueError:
        return ZERO_DURATION

    total = (h2 * 60 + m2) - (h1 * 60 + m1)
    if total < 0:
        total += 24 * 60
    return f"{total // 60}h {total % 60:02d}m"


def _created_at(value: Any) -> int:
    try:
        parsed = int(float(value))
    except (TypeError, ValueError):
        parsed = 0
    return parsed or int(time.time() * 1000)


def _text(value: Any, default: str = "") -> str:
    return str(value) if value else default


def normalize_record(record: Mapping[str, Any], index: int = 0) -> Listing:
    train_number = _text(get_flex_value(record, "trainNumber"))
    date = format_date(get_flex_value(record, "date"))
    departure = format_time(get_flex_value(record, "departureTime"))
    arrival = format_time(get_flex_value(record, "arrivalTime"))
    duration = _text(get_flex_value(record, "duration")) or calculate_duration(departure, arrival)

    amenities = get_flex_value(record, "amenities")
    return Listing(
        id=_text(get_flex_value(record, "id"), f"gen_{train_number}_{date}_{index}"),
        user_id=_text(get_flex_value(record, "userId"), "system"),
        type=parse_ticket_type(get_flex_value(record, "type")),
        train_name=_text(get_flex_value(record, "trainName"), "Unknown"),
        train_number=train_number,
        from_station=_text(get_flex_value(record, "fromStation")),
        to_station=_text(get_flex_value(record, "toStation")),
        date=date,
        departure_time=departure,
        arrival_time=arrival,
        duration=duration,
        class_type=_text(get_flex_value(record, "classType"), TrainClass.SL.value),
        price=parse_price(get_flex_value(record, "price")),
        status=parse_status(get_flex_value(record, "status")),
        user_contact=_text(get_flex_value(record, "userContact")),
        seller_name=_text(get_flex_value(record, "sellerName"), "Anonymous"),
        berth_type=get_flex_value(record, "berthType") or None,
        comment=get_flex_value(record, "comment") or None,
        amenities=list(amenities) if isinstance(amenities, list) else [],
        is_flexible_date=parse_flag(get_flex_value(record, "isFlexibleDate")),
        is_flexible_class=parse_flag(get_flex_value(record, "isFlexibleClass")),
        created_at=_created_at(get_flex_value(record, "createdAt")),
    )


def normalize_records(records: list[Any]) -> list[Listing]:
    """Normalize remote rows, dropping rows without a train number.

    A repeated id keeps the last row seen.
    """
    by_id: dict[str, Listing] = {}
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            log.debug(f"Skipping non-object record at {index}")
            continue
        listing = normalize_record(record, index)
        if not listing.train_number:
            continue
        by_id.pop(listing.id, None)
        by_id[listing.id] = listing
    return list(by_id.values())
