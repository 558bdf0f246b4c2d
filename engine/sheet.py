import json
import logging
from typing import Any

import httpx

from config import settings
from db.models import Listing
from engine.transport import RetryTransport

log = logging.getLogger(__name__)


class SheetClient:
    """Client for the spreadsheet script that holds the listings.

    Every call degrades to None/False on failure; nothing is raised.
    """

    def __init__(
        self,
        script_url: str | None = None,
        transport: RetryTransport | None = None,
    ):
        self.script_url = script_url if script_url is not None else settings.sheet_script_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.script_url) and self.script_url.startswith("http")

    def _get_transport(self) -> RetryTransport:
        if not self._transport:
            self._client = httpx.AsyncClient(follow_redirects=True)
            self._transport = RetryTransport(self._client)
        return self._transport

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            self._transport = None

    async def call(self, action: str, data: dict[str, Any] | None = None) -> Any | None:
        if not self.enabled:
            return None

        transport = self._get_transport()
        params = {"action": action}
        body = json.dumps({"action": action, **(data or {})}, ensure_ascii=False)
        try:
            resp = await transport.post(
                self.script_url,
                params=params,
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/plain;charset=utf-8"},
            )
            result = resp.json()
            if action == "getTickets" and isinstance(result, dict) and result.get("success") is False:
                log.info("Sheet POST rejected getTickets, retrying as GET")
                resp = await transport.get(self.script_url, params=params)
                result = resp.json()
            return result
        except (httpx.HTTPError, TimeoutError) as e:
            log.error(f"Sheet call {action} failed: {e!r}")
            return None
        except json.JSONDecodeError as e:
            log.error(f"Sheet call {action} returned invalid JSON: {e}")
            return None

    async def list_all(self) -> list[dict] | None:
        """Fetch raw listing rows.

        None means the answer cannot be trusted (failure or an unknown
        shape); an empty list is a confirmed empty sheet.
        """
        result = await self.call("getTickets")
        if result is None:
            return None
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            if result.get("success") and isinstance(result.get("data"), list):
                return result["data"]
            if isinstance(result.get("tickets"), list):
                return result["tickets"]
        log.warning(f"Ignoring unrecognized getTickets payload: {str(result)[:200]}")
        return None

    async def add(self, listing: Listing) -> bool:
        result = await self.call("addTicket", {"ticket": listing.to_dict()})
        return bool(isinstance(result, dict) and result.get("success"))

    async def delete(self, listing_id: str) -> bool:
        result = await self.call("deleteTicket", {"id": listing_id})
        return bool(isinstance(result, dict) and result.get("success"))

    async def health(self) -> bool:
        result = await self.call("health")
        return bool(isinstance(result, dict) and result.get("success"))


sheet_client = SheetClient()
