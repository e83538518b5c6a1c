from datetime import datetime, timezone

import pytest

from app.services.models import GeoPoint, SensorReading
from app.services.repository import DuplicateError, InvalidReferenceError, NotFoundError

from tests.conftest import make_tank, make_valve

NODES = [GeoPoint(lat=17.0, lng=78.0), GeoPoint(lat=17.001, lng=78.0)]


def _reading(device_id="dev-1", level=1.0, tank_id="T1"):
    return SensorReading(
        device_id=device_id,
        tank_id=tank_id,
        water_level=level,
        volume_liters=level * 1000,
        pressure_kpa=level * 9.81,
        percentage_full=10.0,
        timestamp=datetime.now(timezone.utc).isoformat(),
        raw_data={"waterLevel": level},
    )


def test_pipeline_crud(repo):
    first = repo.create_pipeline(NODES)
    second = repo.create_pipeline(list(reversed(NODES)))

    assert [p.id for p in repo.list_pipelines()] == [first.id, second.id]
    assert repo.get_pipeline(first.id).nodes == NODES

    extended = NODES + [GeoPoint(lat=17.002, lng=78.0)]
    assert repo.update_pipeline(first.id, extended).nodes == extended

    repo.delete_pipeline(first.id)
    with pytest.raises(NotFoundError):
        repo.get_pipeline(first.id)
    with pytest.raises(NotFoundError):
        repo.delete_pipeline(first.id)
    with pytest.raises(NotFoundError):
        repo.update_pipeline(999, NODES)


def test_malformed_nodes_load_as_empty_pipeline(repo):
    repo._execute("INSERT INTO pipelines (nodes) VALUES (?)", ("not json",))
    pipelines = repo.list_pipelines()
    assert len(pipelines) == 1
    assert pipelines[0].nodes == []


def test_tank_crud(repo):
    created = repo.create_tank(make_tank("T1", active=False, device_id="dev-1", capacity=5000))
    assert created.is_active is False
    assert created.capacity == 5000

    with pytest.raises(DuplicateError):
        repo.create_tank(make_tank("T1"))

    updated = repo.update_tank("T1", {"is_active": True, "waterLevel": 2.5})
    assert updated.is_active is True
    assert updated.water_level == 2.5
    assert [t.tank_id for t in repo.list_active_tanks()] == ["T1"]
    assert repo.get_tank_by_device("dev-1").tank_id == "T1"
    assert repo.get_tank_by_device("nope") is None

    with pytest.raises(ValueError):
        repo.update_tank("T1", {})
    with pytest.raises(ValueError):
        repo.update_tank("T1", {"color": "blue"})
    with pytest.raises(NotFoundError):
        repo.update_tank("missing", {"name": "x"})

    repo.delete_tank("T1")
    assert repo.list_all_tanks() == []


def test_valve_toggle_and_parent_cleanup(repo):
    repo.create_valve(make_valve("V1", is_open=True))
    child = make_valve("V2").model_copy(update={"parent_valve_id": "V1"})
    repo.create_valve(child)

    assert repo.toggle_valve("V1").is_open is False
    assert {v.valve_id for v in repo.list_closed_valves()} == {"V1", "V2"}
    assert repo.toggle_valve("V1").is_open is True

    repo.delete_valve("V1")
    assert repo.get_valve("V2").parent_valve_id is None

    with pytest.raises(NotFoundError):
        repo.toggle_valve("V1")


def test_readings_latest_and_history(repo):
    repo.create_tank(make_tank("T1", device_id="dev-1"))
    for level in (1.0, 2.0, 3.0):
        stored = repo.add_reading(_reading(level=level))
        assert stored.id is not None

    latest = repo.latest_reading_for_device("dev-1")
    assert latest.water_level == 3.0
    assert latest.raw_data == {"waterLevel": 3.0}
    assert repo.latest_reading_for_tank("T1").id == latest.id
    assert repo.latest_reading_for_device("other") is None

    history = repo.history_for_device("dev-1", hours=1, limit=2)
    assert [r.water_level for r in history] == [3.0, 2.0]


def test_snapshot_contains_everything(repo):
    repo.create_pipeline(NODES)
    repo.create_tank(make_tank("T1"))
    repo.create_valve(make_valve("V1"))

    snapshot = repo.snapshot()
    assert len(snapshot.pipelines) == 1
    assert [t.tank_id for t in snapshot.active_tanks()] == ["T1"]
    assert [v.valve_id for v in snapshot.closed_valves()] == ["V1"]


def test_integrity_errors_are_classified(repo):
    repo.create_tank(make_tank("T1"))
    repo.create_valve(make_valve("V1"))

    with pytest.raises(DuplicateError):
        repo.create_valve(make_valve("V1"))

    orphan = make_valve("V2").model_copy(update={"parent_valve_id": "NOPE"})
    with pytest.raises(InvalidReferenceError):
        repo.create_valve(orphan)
    with pytest.raises(InvalidReferenceError):
        repo.update_valve("V1", {"parent_valve_id": "NOPE"})
    with pytest.raises(InvalidReferenceError):
        repo.update_tank("T1", {"name": None})

    # la transacción fallida no deja rastro
    assert [v.valve_id for v in repo.list_valves()] == ["V1"]
    assert repo.get_valve("V1").parent_valve_id is None
    assert repo.get_tank("T1").name == "Tank T1"
