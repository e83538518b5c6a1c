import pytest
from fastapi.testclient import TestClient

from app.services.models import GeoPoint, Pipeline, Tank, Valve
from app.services.repository import init_repository


def make_tank(tank_id="T1", lat=17.0, lng=78.0, active=True, **extra) -> Tank:
    return Tank(
        tank_id=tank_id,
        name=f"Tank {tank_id}",
        latitude=lat,
        longitude=lng,
        is_active=active,
        **extra,
    )


def make_valve(valve_id="V1", lat=17.0, lng=78.0, is_open=False) -> Valve:
    return Valve(
        valve_id=valve_id,
        name=f"Valve {valve_id}",
        latitude=lat,
        longitude=lng,
        is_open=is_open,
    )


def make_pipeline(pipeline_id, coords) -> Pipeline:
    return Pipeline(id=pipeline_id, nodes=[GeoPoint(lat=lat, lng=lng) for lat, lng in coords])


@pytest.fixture
def repo(tmp_path):
    repository = init_repository(str(tmp_path / "water.db"))
    yield repository
    repository.close()


@pytest.fixture
def client(repo):
    from app.main import app

    with TestClient(app) as c:
        yield c
