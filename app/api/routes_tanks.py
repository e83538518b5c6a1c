# app/api/routes_tanks.py

from typing import List

from fastapi import APIRouter, HTTPException

from app.models import MessageResponse, TankCreate, TankSaved, TankUpdate
from app.services.events import TankDeleted, TankUpdated
from app.services.flow_state import coordinator
from app.services.models import Tank
from app.services.repository import (
    DuplicateError,
    InvalidReferenceError,
    NotFoundError,
    get_repository,
)

router = APIRouter(tags=["tanks"])


@router.post("/tank", response_model=TankSaved)
async def create_tank(req: TankCreate):
    try:
        tank = get_repository().create_tank(Tank(**req.model_dump()))
    except DuplicateError:
        raise HTTPException(status_code=409, detail=f"Tank {req.tank_id} already exists")
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    await coordinator.publish(TankUpdated(tank=tank))
    return TankSaved(tankId=tank.tank_id, message="Tank added")


@router.get("/tanks", response_model=List[Tank])
def list_tanks():
    return get_repository().list_all_tanks()


@router.get("/tank/{tank_id}", response_model=Tank)
def get_tank(tank_id: str):
    try:
        return get_repository().get_tank(tank_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Tank not found")


@router.put("/tank/{tank_id}", response_model=MessageResponse)
async def update_tank(tank_id: str, req: TankUpdate):
    """
    Actualización parcial (p. ej. {"isActive": true}). El aviso tank_updated
    se agrupa por tanque para no saturar a los clientes con cambios rápidos.
    """
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        tank = get_repository().update_tank(tank_id, fields)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Tank not found")
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    await coordinator.publish(TankUpdated(tank=tank), debounce_key=f"tank:{tank_id}")
    return MessageResponse(message="Tank updated")


@router.delete("/tank/{tank_id}", response_model=MessageResponse)
async def delete_tank(tank_id: str):
    try:
        get_repository().delete_tank(tank_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Tank not found")

    await coordinator.publish(TankDeleted(tank_id=tank_id))
    return MessageResponse(message="Tank deleted")
