# app/models.py
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.services.models import FlowResult, GeoPoint, SensorReading, Tank, Valve


class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class MessageResponse(BaseModel):
    message: str


# --------- TUBERÍAS ---------

class PipelineRequest(BaseModel):
    nodes: List[LatLng] = Field(min_length=2)


class PipelineSaved(BaseModel):
    id: int
    message: str


class EraseSectionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)


# --------- TANQUES ---------

class TankCreate(Tank):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class TankUpdate(BaseModel):
    """Actualización parcial: solo se aplican los campos enviados."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    is_active: Optional[bool] = None
    type: Optional[str] = None
    shape: Optional[str] = None
    capacity: Optional[float] = None
    diameter: Optional[float] = None
    height: Optional[float] = None
    sensor_height: Optional[float] = None
    water_level: Optional[float] = None
    device_id: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    mandal: Optional[str] = None
    habitation: Optional[str] = None

    @field_validator(
        "name", "latitude", "longitude", "is_active", "type", "shape",
        "capacity", "diameter", "height", "sensor_height", "water_level",
    )
    @classmethod
    def _not_null(cls, value):
        # Se puede omitir el campo, pero no mandarlo en null
        if value is None:
            raise ValueError("field cannot be null")
        return value


class TankSaved(BaseModel):
    tankId: str
    message: str


# --------- VÁLVULAS ---------

class ValveCreate(Valve):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ValveUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    is_open: Optional[bool] = None
    type: Optional[str] = None
    category: Optional[str] = None
    parent_valve_id: Optional[str] = None
    households: Optional[int] = None
    flow_rate: Optional[float] = None
    mandal: Optional[str] = None
    habitation: Optional[str] = None

    @field_validator(
        "name", "latitude", "longitude", "is_open", "type", "category",
        "households", "flow_rate",
    )
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("field cannot be null")
        return value


class ValveSaved(BaseModel):
    valveId: str
    message: str


class ValveToggled(BaseModel):
    message: str
    isOpen: bool
    valveId: str


class SnapRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class SnapResponse(BaseModel):
    snapped: bool
    snap_point: Optional[GeoPoint] = None
    pipeline_id: Optional[int] = None
    segment_index: Optional[int] = None
    distance_m: Optional[float] = None


# --------- SENSORES ---------

class SensorDataRequest(BaseModel):
    """Muestra enviada por el dispositivo (campos extra se guardan como rawData)."""
    model_config = ConfigDict(extra="allow")

    deviceId: str = Field(min_length=1)
    waterLevel: float
    temperature: Optional[float] = None
    # epoch (s o ms) o ISO; se guarda normalizado a ISO UTC
    timestamp: Optional[Union[str, float]] = None
    tankId: Optional[str] = None


class SensorIngestResponse(BaseModel):
    success: bool
    id: Optional[int]
    metrics: SensorReading


# --------- FLUJO ---------

class FlowResponse(BaseModel):
    flow: FlowResult
    flowing_count: int
    blocked_count: int
    coverage_percent: float


# Para /api/flow/geojson (GeoJSON simplificado)
class FlowFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    properties: Dict[str, Any]
    geometry: Dict[str, Any]


class FlowFeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[FlowFeature]
