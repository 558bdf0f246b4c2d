import json
import logging
from typing import Any

import httpx

from config import settings
from db.models import Listing, RouteMatches, TrainInfo
from engine.transport import RetryTransport

log = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an assistant for an Indian railway ticket exchange.
You MUST respond with valid JSON only, no markdown or extra text.
Treat city names, station names and station codes as synonyms of each other
(e.g. Mumbai, Bombay, CSMT, BCT) and tolerate spelling mistakes."""

MATCH_PROMPT = """Search query: "{query}"

Tickets:
{tickets}

Return the ids of every ticket relevant to the query.
Response format: {{"matchedIds": ["id", ...]}}"""

ROUTE_PROMPT = """A traveller wants to go from "{origin}" to "{destination}".

Tickets (id, trainNumber, from, to):
{tickets}

A ticket is an exact match when it boards at the origin (or a station of the same city)
and ends at the destination. It is a partial match when the train route passes through
both places in order but the ticket covers only part of the journey or a nearby station.
Response format: {{"exact": ["id", ...], "partial": ["id", ...]}}"""

LOOKUP_PROMPT = """Give the schedule of Indian Railways train {train_number}.
Response format: {{"trainName": "", "fromStation": "", "toStation": "", "departureTime": "HH:mm", "arrivalTime": "HH:mm"}}"""

TIMINGS_PROMPT = """Give the timings of Indian Railways train {train_number} between {origin} and {destination}.
Response format: {{"departureTime": "HH:mm", "arrivalTime": "HH:mm"}}"""

PARSE_PROMPT = """Extract railway ticket details from this message:
"{text}"
Response format: {{"type": "OFFER|REQUEST", "trainNumber": "", "trainName": "", "fromStation": "", "toStation": "", "date": "YYYY-MM-DD", "classType": "", "price": 0, "departureTime": "HH:mm"}}
Leave out fields that are not mentioned."""


class AIMatcher:
    def __init__(self, transport: RetryTransport | None = None):
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return self._transport is not None or bool(settings.ai_api_key)

    def _get_transport(self) -> RetryTransport:
        if not self._transport:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": f"Bearer {settings.ai_api_key}",
                    "Content-Type": "application/json",
                },
            )
            self._transport = RetryTransport(self._client, timeout=120.0)
        return self._transport

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            self._transport = None

    async def _ask(self, prompt: str, purpose: str) -> Any | None:
        if not self.enabled:
            log.debug(f"AI disabled, skipping {purpose}")
            return None

        payload = {
            "model": settings.ai_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1,
            "max_tokens": 1024,
        }

        try:
            resp = await self._get_transport().post(settings.ai_endpoint, json=payload)
            resp.raise_for_status()
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
            return self._parse_response(content)
        except (httpx.HTTPError, TimeoutError) as e:
            log.error(f"AI {purpose} request failed: {e!r}")
            return None
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
            log.error(f"Failed to parse AI {purpose} response: {e}")
            return None

    def _parse_response(self, content: str) -> Any:
        content = content.strip()
        if content.startswith("```"):
            lines = content.split("\n")
            content = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
        return json.loads(content)

    @staticmethod
    def _ids(value: Any, allowed: set[str]) -> set[str]:
        if not isinstance(value, list):
            return set()
        return {str(v) for v in value if str(v) in allowed}

    async def find_matches(self, query: str, listings: list[Listing]) -> list[str]:
        if not query or not listings:
            return []
        tickets = [
            {
                "id": t.id,
                "type": t.type.value,
                "trainName": t.train_name,
                "trainNumber": t.train_number,
                "fromStation": t.from_station,
                "toStation": t.to_station,
                "date": t.date,
                "classType": t.class_type,
                "price": t.price,
            }
            for t in listings
        ]
        prompt = MATCH_PROMPT.format(query=query, tickets=json.dumps(tickets, ensure_ascii=False))
        data = await self._ask(prompt, "match")
        if not isinstance(data, dict):
            return []

        allowed = {t.id for t in listings}
        matched = self._ids(data.get("matchedIds"), allowed)
        log.info(f"AI matched {len(matched)}/{len(listings)} listings for {query!r}")
        return [t.id for t in listings if t.id in matched]

    async def analyze_route(
        self, origin: str, destination: str, tickets: list[dict[str, str]]
    ) -> RouteMatches:
        if not origin or not destination or not tickets:
            return RouteMatches()
        prompt = ROUTE_PROMPT.format(
            origin=origin,
            destination=destination,
            tickets=json.dumps(tickets, ensure_ascii=False),
        )
        data = await self._ask(prompt, "route")
        if not isinstance(data, dict):
            return RouteMatches()

        allowed = {str(t["id"]) for t in tickets}
        exact = self._ids(data.get("exact"), allowed)
        partial = self._ids(data.get("partial"), allowed) - exact
        return RouteMatches(exact=exact, partial=partial)

    async def lookup_train(self, train_number: str) -> TrainInfo | None:
        if len(train_number) != 5:
            return None
        data = await self._ask(LOOKUP_PROMPT.format(train_number=train_number), "lookup")
        if not isinstance(data, dict):
            return None
        return TrainInfo(
            train_name=data.get("trainName") or None,
            from_station=data.get("fromStation") or None,
            to_station=data.get("toStation") or None,
            departure_time=data.get("departureTime") or None,
            arrival_time=data.get("arrivalTime") or None,
        )

    async def get_train_timings(
        self, train_number: str, origin: str, destination: str
    ) -> tuple[str | None, str | None] | None:
        if not train_number or not origin or not destination:
            return None
        prompt = TIMINGS_PROMPT.format(
            train_number=train_number, origin=origin, destination=destination
        )
        data = await self._ask(prompt, "timings")
        if not isinstance(data, dict):
            return None
        return data.get("departureTime") or None, data.get("arrivalTime") or None

    async def parse_ticket(self, text: str) -> dict[str, Any] | None:
        if not text or len(text.strip()) < 5:
            return None
        data = await self._ask(PARSE_PROMPT.format(text=text), "parse")
        return data if isinstance(data, dict) else None


ai_matcher = AIMatcher()
