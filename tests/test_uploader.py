from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx

from wearbridge.models import Batch, SensorSample
from wearbridge.uploader import Uploader

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
ENDPOINT = "http://backend.test/stress/save"


def _batch(seq: int) -> Batch:
    return Batch("AA:BB", seq, T0, [SensorSample("AA:BB", "heart_rate", 70.0, "bpm", T0)])


def _uploader(handler, **kwargs) -> Uploader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Uploader(ENDPOINT, client=client, **kwargs)


def test_send_posts_json_payload() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    uploader = _uploader(handler)
    assert asyncio.run(uploader.send(_batch(1))) is True

    assert seen[0]["id"] == "AA:BB"
    assert seen[0]["batch"] == 1
    assert seen[0]["count"] == 1
    assert seen[0]["time"] == "2026-03-01 08:00:00"
    assert seen[0]["samples"][0]["kind"] == "heart_rate"
    assert not uploader.pending


def test_server_error_queues_batch() -> None:
    uploader = _uploader(lambda request: httpx.Response(503, text="busy"))

    assert asyncio.run(uploader.send(_batch(1))) is False
    assert [b.sequence for b in uploader.pending] == [1]


def test_connection_error_queues_and_drops_oldest_when_full() -> None:
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    uploader = _uploader(handler, retry_limit=2)

    async def scenario():
        for seq in (1, 2, 3):
            await uploader.send(_batch(seq))

    asyncio.run(scenario())
    assert [b.sequence for b in uploader.pending] == [2, 3]


def test_retry_pending_stops_at_first_failure() -> None:
    def handler(request):
        if json.loads(request.content)["batch"] == 2:
            return httpx.Response(500)
        return httpx.Response(201)

    uploader = _uploader(handler)
    uploader.pending.extend([_batch(1), _batch(2), _batch(3)])

    assert asyncio.run(uploader.retry_pending()) == 1
    assert [b.sequence for b in uploader.pending] == [2, 3]


def test_aclose_leaves_injected_client_open() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    uploader = Uploader(ENDPOINT, client=client)

    asyncio.run(uploader.aclose())

    assert not client.is_closed
