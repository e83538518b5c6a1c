import asyncio
import json

import httpx
import pytest

from app.services.source_api import (
    DevicePoller,
    fetch_latest_sample,
    latest_sample_url,
    parse_sample,
)

FEED_URL = "https://feed.example"


async def _ignore(device_id, data):
    return None


def _fetch(handler, device_id="dev-1"):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_latest_sample(client, device_id, FEED_URL)

    return asyncio.run(run())


def test_latest_sample_url():
    assert (
        latest_sample_url("https://demo.firebaseio.com/", "123456")
        == "https://demo.firebaseio.com/devices/123456/latest.json"
    )


def test_parse_sample_prefers_water_level():
    data = {"waterLevel": "2.5", "sensorHeight": 9, "temperature": 24, "timestamp": 1700000000}
    assert parse_sample(data) == (2.5, 24.0, "2023-11-14T22:13:20+00:00")


def test_parse_sample_normalizes_epoch_millis():
    _, _, timestamp = parse_sample({"waterLevel": 1, "timestamp": "1700000000000"})
    assert timestamp == "2023-11-14T22:13:20+00:00"


def test_parse_sample_falls_back_to_sensor_height():
    assert parse_sample({"sensorHeight": 3.1}) == (3.1, None, None)
    assert parse_sample({}) == (0.0, None, None)


def test_fetch_latest_sample():
    def handler(request):
        assert request.url.path == "/devices/dev-1/latest.json"
        return httpx.Response(200, json={"waterLevel": 1.2})

    assert _fetch(handler) == {"waterLevel": 1.2}


def test_fetch_latest_sample_without_data():
    # Firebase responde el literal null cuando el dispositivo no tiene muestras
    assert _fetch(lambda request: httpx.Response(200, content=b"null")) is None


def test_fetch_latest_sample_rejects_non_json_body():
    with pytest.raises(ValueError):
        _fetch(lambda request: httpx.Response(200, content=b"<html>maintenance</html>"))


def test_fetch_latest_sample_http_error():
    with pytest.raises(httpx.HTTPStatusError):
        _fetch(lambda request: httpx.Response(503, content=b"unavailable"))


def test_poller_disabled_without_feed_url():
    poller = DevicePoller(on_sample=_ignore, base_url="")
    assert poller.enabled is False
    assert poller.start("dev-1") is False
    assert poller.is_polling("dev-1") is False


def test_poller_skips_bad_bodies_and_repeated_samples():
    bodies = [
        b"<html>oops</html>",
        json.dumps({"waterLevel": 1.0, "timestamp": 1}).encode(),
        json.dumps({"waterLevel": 1.0, "timestamp": 1}).encode(),
        b"null",
        json.dumps({"waterLevel": 2.0, "timestamp": 2}).encode(),
    ]
    calls = {"n": 0}
    received = []

    def handler(request):
        body = bodies[min(calls["n"], len(bodies) - 1)]
        calls["n"] += 1
        return httpx.Response(200, content=body)

    async def on_sample(device_id, data):
        received.append((device_id, data["timestamp"]))

    async def scenario():
        poller = DevicePoller(
            on_sample=on_sample,
            base_url=FEED_URL,
            interval=0.005,
            transport=httpx.MockTransport(handler),
        )
        assert poller.start("dev-1") is True
        assert poller.start("dev-1") is False
        await asyncio.sleep(0.2)
        poller.stop_all()
        await asyncio.sleep(0)
        assert poller.is_polling("dev-1") is False

    asyncio.run(scenario())
    assert received == [("dev-1", 1), ("dev-1", 2)]
