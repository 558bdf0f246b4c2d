import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from config import settings

log = logging.getLogger(__name__)


class RetryTransport:
    """Bounded-retry wrapper around a single outbound request.

    Any received response counts as success; only transport errors and
    per-attempt timeouts are retried, with linear backoff.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int | None = None,
        base_delay: float | None = None,
        timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.max_retries = settings.http_max_retries if max_retries is None else max_retries
        self.base_delay = settings.http_retry_delay_seconds if base_delay is None else base_delay
        self.timeout = settings.http_timeout_seconds if timeout is None else timeout
        self._sleep = sleep

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self.client.request(method, url, **kwargs),
                    timeout=self.timeout,
                )
            except (httpx.TransportError, asyncio.TimeoutError) as e:
                if attempt >= self.max_retries:
                    log.error(f"{method} {url} failed after {attempt + 1} attempts: {e!r}")
                    raise
                attempt += 1
                delay = self.base_delay * attempt
                log.warning(
                    f"{method} {url} failed ({e!r}), retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)
