# app/services/models.py

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class GeoPoint(BaseModel):
    """
    Punto geográfico inmutable (lat, lng). Se usa en todo el núcleo.
    """
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class _CamelModel(BaseModel):
    # Los registros viajan en camelCase (tankId, isActive, ...) hacia el mapa
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Pipeline(_CamelModel):
    """
    Tubería: polilínea de nodos. Sus segmentos son pares consecutivos de nodos.
    """
    id: int
    nodes: List[GeoPoint] = Field(default_factory=list)
    created_at: Optional[str] = None


class Tank(_CamelModel):
    """
    Tanque de agua. Solo actúa como fuente del grafo mientras is_active = True.
    """
    tank_id: str
    name: str
    latitude: float
    longitude: float
    is_active: bool = False
    type: str = "Overhead"
    shape: str = "Cylinder"
    capacity: float = 0.0
    diameter: float = 0.0
    height: float = 0.0
    sensor_height: float = 0.0
    water_level: float = 0.0
    device_id: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    mandal: Optional[str] = None
    habitation: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)


class Valve(_CamelModel):
    """
    Válvula de compuerta. Cerrada (is_open = False) bloquea los segmentos cercanos.
    parent_valve_id es solo informativo.
    """
    valve_id: str
    name: str
    latitude: float
    longitude: float
    is_open: bool = True
    type: str = "Gate"
    category: str = "Main"
    parent_valve_id: Optional[str] = None
    households: int = 0
    flow_rate: float = 0.0
    mandal: Optional[str] = None
    habitation: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)


class SystemSnapshot(BaseModel):
    """
    Foto consistente de tuberías, tanques y válvulas para UN cálculo de flujo.
    """
    model_config = ConfigDict(frozen=True)

    pipelines: Tuple[Pipeline, ...] = ()
    tanks: Tuple[Tank, ...] = ()
    valves: Tuple[Valve, ...] = ()

    def active_tanks(self) -> List[Tank]:
        return [t for t in self.tanks if t.is_active]

    def closed_valves(self) -> List[Valve]:
        return [v for v in self.valves if not v.is_open]


# --------- RESULTADO DE FLUJO ---------

class FlowingSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    pipeline_id: int
    segment_index: int
    start: GeoPoint
    end: GeoPoint
    source_tank: str


class BlockedSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    pipeline_id: int
    segment_index: int
    start: GeoPoint
    end: GeoPoint
    blocked_by: str


class FlowResult(BaseModel):
    """
    Partición de segmentos en {fluyendo, bloqueado, sin alcanzar} para una foto.
    Se recalcula completa en cada cambio; nunca se modifica en sitio.
    """
    model_config = ConfigDict(frozen=True)

    flowing_segments: Tuple[FlowingSegment, ...] = ()
    blocked_segments: Tuple[BlockedSegment, ...] = ()
    total_segment_count: int = 0
    active_tank_count: int = 0
    iterations: int = 0
    truncated: bool = False

    @computed_field
    @property
    def coverage(self) -> float:
        if self.total_segment_count <= 0:
            return 0.0
        return len(self.flowing_segments) / self.total_segment_count

    def flowing_keys(self) -> set:
        return {(s.pipeline_id, s.segment_index) for s in self.flowing_segments}

    def blocked_keys(self) -> set:
        return {(s.pipeline_id, s.segment_index) for s in self.blocked_segments}


# --------- TELEMETRÍA ---------

class SensorReading(_CamelModel):
    """
    Una muestra de sensor ya convertida a métricas de tanque.
    """
    id: Optional[int] = None
    device_id: str
    tank_id: Optional[str] = None
    water_level: float
    volume_liters: float
    pressure_kpa: float = Field(alias="pressureKPa")
    percentage_full: Optional[float] = None
    temperature: Optional[float] = None
    timestamp: str
    raw_data: Dict[str, Any] = Field(default_factory=dict)
