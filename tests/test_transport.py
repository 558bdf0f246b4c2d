import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import pytest

from engine.transport import RetryTransport


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_transport(handler, max_retries=3, base_delay=0.5, timeout=5.0):
    sleep = Recorder()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = RetryTransport(
        client, max_retries=max_retries, base_delay=base_delay, timeout=timeout, sleep=sleep
    )
    return transport, sleep


class TestRetryTransport:
    def test_success_first_try(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"ok": True})

        transport, sleep = make_transport(handler)
        resp = asyncio.run(transport.get("https://sheet.test/exec"))

        assert resp.json() == {"ok": True}
        assert len(calls) == 1
        assert sleep.delays == []

    def test_linear_backoff_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, text="ok")

        transport, sleep = make_transport(handler, base_delay=0.5)
        resp = asyncio.run(transport.post("https://sheet.test/exec"))

        assert resp.text == "ok"
        assert len(calls) == 3
        assert sleep.delays == [0.5, 1.0]

    def test_exhausted_retries_propagate(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadError("reset", request=request)

        transport, sleep = make_transport(handler, max_retries=2, base_delay=1.0)

        with pytest.raises(httpx.ReadError):
            asyncio.run(transport.get("https://sheet.test/exec"))

        assert len(calls) == 3
        assert sleep.delays == [1.0, 2.0]

    def test_error_status_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"success": False})

        transport, sleep = make_transport(handler)
        resp = asyncio.run(transport.get("https://sheet.test/exec"))

        assert resp.status_code == 500
        assert len(calls) == 1
        assert sleep.delays == []

    def test_per_attempt_timeout(self):
        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) == 1:
                await asyncio.sleep(1)
            return httpx.Response(200, text="late but fine")

        transport, sleep = make_transport(handler, max_retries=1, base_delay=0.1, timeout=0.05)
        resp = asyncio.run(transport.get("https://sheet.test/exec"))

        assert resp.text == "late but fine"
        assert len(calls) == 2
        assert sleep.delays == [0.1]

    def test_timeout_exhausted(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        transport, sleep = make_transport(handler, max_retries=0, timeout=0.05)

        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(transport.get("https://sheet.test/exec"))
        assert sleep.delays == []
