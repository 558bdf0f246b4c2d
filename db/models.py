from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TicketType(Enum):
    OFFER = "OFFER"
    REQUEST = "REQUEST"


class TicketStatus(Enum):
    OPEN = "OPEN"
    PENDING = "PENDING"
    CLOSED = "CLOSED"
    BOOKED = "BOOKED"


class TrainClass(Enum):
    EA = "EA"  # Anubhuti
    EC = "EC"  # Executive Chair Car
    AC_1 = "1A"
    AC_2 = "2A"
    AC_3 = "3A"
    AC_3E = "3E"
    FC = "FC"
    CC = "CC"
    SL = "SL"
    S_2 = "2S"


class MatchStrength(Enum):
    ALL = "ALL"
    EXACT = "EXACT"
    PARTIAL = "PARTIAL"


class SortKey(Enum):
    DATE = "DATE"
    PRICE_ASC = "PRICE_ASC"
    PRICE_DESC = "PRICE_DESC"


PLACEHOLDER_TIME = "--:--"
ZERO_DURATION = "0h 00m"


@dataclass
class Listing:
    id: str
    user_id: str
    type: TicketType
    train_name: str
    train_number: str
    from_station: str
    to_station: str
    date: str
    departure_time: str
    arrival_time: str
    duration: str
    class_type: str
    price: float
    status: TicketStatus = TicketStatus.OPEN
    user_contact: str = ""
    seller_name: str = "Anonymous"
    berth_type: str | None = None
    comment: str | None = None
    amenities: list[str] = field(default_factory=list)
    is_flexible_date: bool = False
    is_flexible_class: bool = False
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "trainName": self.train_name,
            "trainNumber": self.train_number,
            "fromStation": self.from_station,
            "toStation": self.to_station,
            "date": self.date,
            "departureTime": self.departure_time,
            "arrivalTime": self.arrival_time,
            "duration": self.duration,
            "classType": self.class_type,
            "berthType": self.berth_type,
            "price": self.price,
            "status": self.status.value,
            "userContact": self.user_contact,
            "sellerName": self.seller_name,
            "comment": self.comment,
            "amenities": list(self.amenities),
            "isFlexibleDate": self.is_flexible_date,
            "isFlexibleClass": self.is_flexible_class,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Listing":
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("userId", "system")),
            type=TicketType(data.get("type", TicketType.OFFER.value)),
            train_name=str(data.get("trainName", "Unknown")),
            train_number=str(data.get("trainNumber", "")),
            from_station=str(data.get("fromStation", "")),
            to_station=str(data.get("toStation", "")),
            date=str(data.get("date", "")),
            departure_time=str(data.get("departureTime", PLACEHOLDER_TIME)),
            arrival_time=str(data.get("arrivalTime", PLACEHOLDER_TIME)),
            duration=str(data.get("duration", ZERO_DURATION)),
            class_type=str(data.get("classType", TrainClass.SL.value)),
            price=float(data.get("price", 0) or 0),
            status=TicketStatus(data.get("status", TicketStatus.OPEN.value)),
            user_contact=str(data.get("userContact", "")),
            seller_name=str(data.get("sellerName", "Anonymous")),
            berth_type=data.get("berthType"),
            comment=data.get("comment"),
            amenities=list(data.get("amenities") or []),
            is_flexible_date=bool(data.get("isFlexibleDate", False)),
            is_flexible_class=bool(data.get("isFlexibleClass", False)),
            created_at=int(data.get("createdAt", 0) or 0),
        )


@dataclass
class RouteMatches:
    exact: set[str] = field(default_factory=set)
    partial: set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.exact and not self.partial


@dataclass
class SearchCriteria:
    """Filter/search state consumed by the discovery pipeline.

    ``semantic_ids`` is None until a semantic search has been submitted.
    ``route_pending`` is True while a route classification is in flight.
    """

    query: str = ""
    semantic_ids: set[str] | None = None
    route_from: str = ""
    route_to: str = ""
    route_matches: RouteMatches = field(default_factory=RouteMatches)
    route_pending: bool = False
    match_filter: MatchStrength = MatchStrength.ALL
    ticket_type: TicketType | None = None
    classes: set[str] = field(default_factory=set)
    date: str | None = None
    my_listings_only: bool = False
    viewer_id: str | None = None
    sort: SortKey = SortKey.DATE


@dataclass
class TrainInfo:
    train_name: str | None = None
    from_station: str | None = None
    to_station: str | None = None
    departure_time: str | None = None
    arrival_time: str | None = None


CACHE_SCHEMA = """
CREATE TABLE IF NOT EXISTS listing_cache (
    cache_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""
