# app/api/routes_pipelines.py

from typing import List

from fastapi import APIRouter, HTTPException

from app.graph.network import erase_section
from app.models import (
    EraseSectionRequest,
    MessageResponse,
    PipelineRequest,
    PipelineSaved,
)
from app.services.events import PipelineCreated, PipelineDeleted, PipelineUpdated
from app.services.flow_state import coordinator
from app.services.models import GeoPoint, Pipeline
from app.services.repository import NotFoundError, get_repository

router = APIRouter(tags=["pipelines"])


def _to_points(req: PipelineRequest) -> List[GeoPoint]:
    return [GeoPoint(lat=n.lat, lng=n.lng) for n in req.nodes]


@router.post("/pipeline", response_model=PipelineSaved)
async def create_pipeline(req: PipelineRequest):
    pipeline = get_repository().create_pipeline(_to_points(req))
    await coordinator.publish(PipelineCreated(pipeline=pipeline))
    return PipelineSaved(id=pipeline.id, message="Pipeline saved")


@router.get("/pipelines", response_model=List[Pipeline])
def list_pipelines():
    return get_repository().list_pipelines()


@router.get("/pipeline/{pipeline_id}", response_model=Pipeline)
def get_pipeline(pipeline_id: int):
    try:
        return get_repository().get_pipeline(pipeline_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pipeline not found")


@router.put("/pipeline/{pipeline_id}", response_model=MessageResponse)
async def update_pipeline(pipeline_id: int, req: PipelineRequest):
    try:
        pipeline = get_repository().update_pipeline(pipeline_id, _to_points(req))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pipeline not found")

    await coordinator.publish(PipelineUpdated(pipeline=pipeline))
    return MessageResponse(message="Pipeline updated")


@router.post("/pipeline/{pipeline_id}/erase", response_model=Pipeline)
async def erase_pipeline_section(pipeline_id: int, req: EraseSectionRequest):
    """
    Herramienta de borrado: elimina los nodos entre dos índices
    (se conservan ambos extremos). No deja tuberías de menos de 2 nodos.
    """
    repo = get_repository()
    try:
        pipeline = repo.get_pipeline(pipeline_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pipeline not found")

    try:
        new_nodes = erase_section(pipeline.nodes, req.start_index, req.end_index)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    updated = repo.update_pipeline(pipeline_id, new_nodes)
    await coordinator.publish(PipelineUpdated(pipeline=updated))
    return updated


@router.delete("/pipeline/{pipeline_id}", response_model=MessageResponse)
async def delete_pipeline(pipeline_id: int):
    try:
        get_repository().delete_pipeline(pipeline_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pipeline not found")

    await coordinator.publish(PipelineDeleted(pipeline_id=pipeline_id))
    return MessageResponse(message="Pipeline deleted")
