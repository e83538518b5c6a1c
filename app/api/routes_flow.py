# app/api/routes_flow.py

from typing import List

from fastapi import APIRouter
from shapely.geometry import LineString, mapping

from app.models import FlowFeature, FlowFeatureCollection, FlowResponse, MessageResponse
from app.services.flow_state import coordinator
from app.services.models import FlowResult, GeoPoint

router = APIRouter(tags=["flow"])


def _line(start: GeoPoint, end: GeoPoint) -> dict:
    # GeoJSON usa (lng, lat)
    return mapping(LineString([(start.lng, start.lat), (end.lng, end.lat)]))


def flow_to_features(flow: FlowResult) -> List[FlowFeature]:
    features: List[FlowFeature] = []

    for seg in flow.flowing_segments:
        features.append(
            FlowFeature(
                properties={
                    "status": "flowing",
                    "pipelineId": seg.pipeline_id,
                    "segmentIndex": seg.segment_index,
                    "sourceTank": seg.source_tank,
                },
                geometry=_line(seg.start, seg.end),
            )
        )

    for seg in flow.blocked_segments:
        features.append(
            FlowFeature(
                properties={
                    "status": "blocked",
                    "pipelineId": seg.pipeline_id,
                    "segmentIndex": seg.segment_index,
                    "blockedBy": seg.blocked_by,
                },
                geometry=_line(seg.start, seg.end),
            )
        )

    return features


@router.get("/flow", response_model=FlowResponse)
def get_flow():
    """
    Calcula el flujo con la foto actual de tuberías/tanques/válvulas.
    coverage_percent = segmentos con flujo / total de segmentos * 100.
    """
    flow = coordinator.compute()
    return FlowResponse(
        flow=flow,
        flowing_count=len(flow.flowing_segments),
        blocked_count=len(flow.blocked_segments),
        coverage_percent=round(flow.coverage * 100.0, 1),
    )


@router.get("/flow/geojson", response_model=FlowFeatureCollection)
def get_flow_geojson():
    flow = coordinator.compute()
    return FlowFeatureCollection(features=flow_to_features(flow))


@router.post("/flow/recompute", response_model=MessageResponse)
async def request_flow_recompute():
    coordinator.request_recompute()
    return MessageResponse(message="Flow recompute scheduled")
