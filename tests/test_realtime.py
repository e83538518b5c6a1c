import asyncio
import json
import sqlite3

from starlette.websockets import WebSocketState

from app.algorithms.flow import FlowSettings
from app.services.debounce import Debouncer
from app.services.events import FlowUpdated, PongEvent, ValveDeleted
from app.services.flow_state import FlowCoordinator
from app.services.models import SystemSnapshot
from app.services.notifier import ConnectionHub, DeviceChannels

from tests.conftest import make_pipeline, make_tank


class FakeSocket:
    def __init__(self, state=WebSocketState.CONNECTED, fail=False):
        self.client_state = state
        self.fail = fail
        self.sent = []
        self.closed_with = None

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.closed_with = code


class FakeHub:
    def __init__(self):
        self.events = []

    async def broadcast(self, event):
        self.events.append(event)
        return 1


class FakeRepo:
    def __init__(self):
        self.fail = False

    def snapshot(self):
        if self.fail:
            raise sqlite3.OperationalError("database is locked")
        return SystemSnapshot(
            pipelines=(make_pipeline(1, [(17.0, 78.0), (17.001, 78.0)]),),
            tanks=(make_tank("T1"),),
        )


# --------- Debouncer ---------

def test_debouncer_runs_only_latest_callback():
    calls = []

    async def scenario():
        debouncer = Debouncer(0.02)
        for value in range(3):
            debouncer.schedule("k", lambda v=value: calls.append(v))
        assert debouncer.pending == ["k"]
        await asyncio.sleep(0.1)
        assert debouncer.pending == []

    asyncio.run(scenario())
    assert calls == [2]


def test_debouncer_keys_are_independent_and_awaitable():
    calls = []

    async def record(name):
        calls.append(name)

    async def scenario():
        debouncer = Debouncer(0.01)
        debouncer.schedule("a", lambda: record("a"))
        debouncer.schedule("b", lambda: record("b"))
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert sorted(calls) == ["a", "b"]


def test_debouncer_cancel_and_failing_callback(caplog):
    calls = []

    def boom():
        raise RuntimeError("boom")

    async def scenario():
        debouncer = Debouncer(0.01)
        debouncer.schedule("cancelled", lambda: calls.append("x"))
        assert debouncer.cancel("cancelled") is True
        assert debouncer.cancel("cancelled") is False

        debouncer.schedule("broken", boom)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert calls == []
    assert "Debounced callback for 'broken' failed" in caplog.text


# --------- ConnectionHub / DeviceChannels ---------

def test_broadcast_drops_dead_sessions():
    hub = ConnectionHub()
    alive = FakeSocket()
    broken = FakeSocket(fail=True)
    gone = FakeSocket(state=WebSocketState.DISCONNECTED)
    for ws in (alive, broken, gone):
        hub.register(ws)

    sent = asyncio.run(hub.broadcast(ValveDeleted(valve_id="V1")))

    assert sent == 1
    assert len(hub) == 1
    assert alive.sent == [{"type": "valve_deleted", "valveId": "V1"}]
    assert gone.sent == []


def test_broadcast_without_clients():
    assert asyncio.run(ConnectionHub().broadcast(PongEvent())) == 0


def test_close_all():
    hub = ConnectionHub()
    ws = FakeSocket()
    hub.register(ws)
    asyncio.run(hub.close_all())
    assert ws.closed_with == 1000
    assert len(hub) == 0


def test_device_channels_fan_out():
    channels = DeviceChannels()
    first = channels.subscribe("dev-1")
    second = channels.subscribe("dev-1")

    assert channels.publish("dev-1", "sample") == 2
    assert channels.publish("dev-2", "sample") == 0
    assert first.get_nowait() == "sample"
    assert second.get_nowait() == "sample"

    assert channels.unsubscribe("dev-1", first) is False
    assert channels.unsubscribe("dev-1", second) is True
    assert channels.devices() == []


# --------- FlowCoordinator ---------

def _coordinator(repo, hub):
    return FlowCoordinator(
        repo_provider=lambda: repo,
        connections=hub,
        delay_seconds=0.01,
        settings=FlowSettings(),
    )


def test_recompute_broadcasts_flow_update():
    hub = FakeHub()
    coordinator = _coordinator(FakeRepo(), hub)

    result = asyncio.run(coordinator.recompute_now())

    assert result.flowing_keys() == {(1, 0)}
    assert coordinator.latest == result
    assert isinstance(hub.events[-1], FlowUpdated)


def test_unreadable_snapshot_keeps_previous_result():
    repo = FakeRepo()
    hub = FakeHub()
    coordinator = _coordinator(repo, hub)
    previous = asyncio.run(coordinator.recompute_now())

    repo.fail = True
    assert asyncio.run(coordinator.recompute_now()) == previous
    assert coordinator.latest == previous
    assert len(hub.events) == 1


def test_publish_broadcasts_and_schedules_single_recompute():
    hub = FakeHub()
    coordinator = _coordinator(FakeRepo(), hub)

    async def scenario():
        await coordinator.publish(ValveDeleted(valve_id="V1"))
        await coordinator.publish(ValveDeleted(valve_id="V2"))
        await coordinator.publish(PongEvent())
        await asyncio.sleep(0.1)

    asyncio.run(scenario())

    kinds = [e.type for e in hub.events]
    assert kinds == ["valve_deleted", "valve_deleted", "pong", "flow_updated"]


def test_publish_with_debounce_key_sends_latest_only():
    hub = FakeHub()
    coordinator = _coordinator(FakeRepo(), hub)

    async def scenario():
        await coordinator.publish(PongEvent(timestamp="1"), debounce_key="tank:T1")
        await coordinator.publish(PongEvent(timestamp="2"), debounce_key="tank:T1")
        await asyncio.sleep(0.05)
        coordinator.shutdown()

    asyncio.run(scenario())
    assert [e.timestamp for e in hub.events] == ["2"]
