# app/api/routes_valves.py

from typing import List

from fastapi import APIRouter, HTTPException

from app.config import VALVE_SNAP_DISTANCE_M
from app.graph.network import nearest_pipeline_point
from app.models import (
    MessageResponse,
    SnapRequest,
    SnapResponse,
    ValveCreate,
    ValveSaved,
    ValveToggled,
    ValveUpdate,
)
from app.services.events import ValveDeleted, ValveUpdated
from app.services.flow_state import coordinator
from app.services.models import GeoPoint, Valve
from app.services.repository import (
    DuplicateError,
    InvalidReferenceError,
    NotFoundError,
    get_repository,
)

router = APIRouter(tags=["valves"])


@router.post("/valve", response_model=ValveSaved)
async def create_valve(req: ValveCreate):
    try:
        valve = get_repository().create_valve(Valve(**req.model_dump()))
    except DuplicateError:
        raise HTTPException(status_code=409, detail=f"Valve {req.valve_id} already exists")
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    await coordinator.publish(ValveUpdated(valve=valve))
    return ValveSaved(valveId=valve.valve_id, message="Valve added")


@router.get("/valves", response_model=List[Valve])
def list_valves():
    return get_repository().list_valves()


@router.post("/valve/snap", response_model=SnapResponse)
def snap_valve(req: SnapRequest):
    """
    Busca el punto más cercano sobre las tuberías para colocar una válvula.
    snapped = True solo si está dentro de VALVE_SNAP_DISTANCE_M.
    """
    result = nearest_pipeline_point(
        GeoPoint(lat=req.lat, lng=req.lng),
        get_repository().list_pipelines(),
    )
    if result is None:
        return SnapResponse(snapped=False)

    return SnapResponse(
        snapped=result.distance_m < VALVE_SNAP_DISTANCE_M,
        snap_point=result.snap_point,
        pipeline_id=result.pipeline_id,
        segment_index=result.segment_index,
        distance_m=result.distance_m,
    )


@router.get("/valve/{valve_id}", response_model=Valve)
def get_valve(valve_id: str):
    try:
        return get_repository().get_valve(valve_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Valve not found")


@router.put("/valve/{valve_id}", response_model=MessageResponse)
async def update_valve(valve_id: str, req: ValveUpdate):
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        valve = get_repository().update_valve(valve_id, fields)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Valve not found")
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    await coordinator.publish(ValveUpdated(valve=valve))
    return MessageResponse(message="Valve updated")


@router.patch("/valve/{valve_id}/toggle", response_model=ValveToggled)
async def toggle_valve(valve_id: str):
    try:
        valve = get_repository().toggle_valve(valve_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Valve not found")

    await coordinator.publish(ValveUpdated(valve=valve))
    return ValveToggled(message="Valve toggled", isOpen=valve.is_open, valveId=valve.valve_id)


@router.delete("/valve/{valve_id}", response_model=MessageResponse)
async def delete_valve(valve_id: str):
    try:
        get_repository().delete_valve(valve_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Valve not found")

    await coordinator.publish(ValveDeleted(valve_id=valve_id))
    return MessageResponse(message="Valve deleted")
