from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone

import pytest

from wearbridge import gatt
from wearbridge.api import create_app, start_background_session
from wearbridge.config import IngestConfig
from wearbridge.session import WearableSession

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def session() -> WearableSession:
    config = IngestConfig(device_address="AA:BB", characteristics=["heart_rate", "battery"], log_file=None)
    return WearableSession(config, clock=lambda: T0)


@pytest.fixture
def client(session):
    app = create_app(session)
    app.config["TESTING"] = True
    return app.test_client()


def test_health_reports_buffer(client, session) -> None:
    session.handle_notification(gatt.HR_MEASUREMENT, bytearray([0x00, 70]))

    body = client.get("/health").get_json()

    assert body == {"status": "ok", "connected": False, "buffered": 1}


def test_latest_and_heart_rate(client, session) -> None:
    assert client.get("/heart-rate").get_json() == {"heart_rate": None}

    session.handle_notification(gatt.HR_MEASUREMENT, bytearray([0x00, 70]))
    session.handle_notification(gatt.BATTERY_LEVEL, bytearray([55]))

    latest = client.get("/latest").get_json()
    assert latest["heart_rate"]["value"] == 70.0
    assert latest["battery"]["unit"] == "%"
    assert latest["battery"]["time"] == T0.isoformat()
    assert client.get("/heart-rate").get_json() == {"heart_rate": 70}


def test_receive_and_list_samples(client) -> None:
    payload = {
        "id": "ring-1",
        "batch": 4,
        "samples": [
            {"kind": "spo2", "value": 97.0, "unit": "%"},
            {"kind": "heart_rate", "value": 64, "unit": "bpm"},
        ],
    }

    resp = client.post("/samples", json=payload)
    assert resp.status_code == 201
    assert resp.get_json() == {"received": 2, "batch": 4}

    listed = client.get("/samples", query_string={"kind": "spo2"}).get_json()
    assert listed["count"] == 1
    assert listed["samples"][0]["device"] == "ring-1"
    assert client.get("/samples").get_json()["count"] == 2


@pytest.mark.parametrize(
    "payload",
    [
        [1, 2, 3],
        {"samples": []},
        {"id": "ring-1", "samples": "nope"},
        {"id": "ring-1", "samples": [{"kind": "spo2", "value": "high"}]},
        {"id": "ring-1", "samples": [{"value": 1.0}]},
    ],
)
def test_receive_rejects_bad_payloads(client, payload) -> None:
    resp = client.post("/samples", json=payload)
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_app_without_session() -> None:
    client = create_app().test_client()
    assert client.get("/health").get_json()["buffered"] == 0
    assert client.get("/latest").get_json() == {}


def test_start_background_session_runs_on_its_own_loop() -> None:
    class LoopRecorder:
        def __init__(self):
            self.thread_name = None
            self.loop = None

        async def run(self):
            self.thread_name = threading.current_thread().name
            self.loop = asyncio.get_running_loop()

    recorder = LoopRecorder()
    thread = start_background_session(recorder)
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert thread.daemon
    assert recorder.thread_name == "wearbridge-ble"
    assert recorder.loop.is_closed()
