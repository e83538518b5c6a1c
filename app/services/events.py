# app/services/events.py

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.services.models import FlowResult, Pipeline, Tank, Valve


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ConnectedEvent(_Event):
    type: Literal["connected"] = "connected"
    message: str = "Connected to Water Monitoring WebSocket"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class PongEvent(_Event):
    type: Literal["pong"] = "pong"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class TankUpdated(_Event):
    type: Literal["tank_updated"] = "tank_updated"
    tank: Tank


class TankDeleted(_Event):
    type: Literal["tank_deleted"] = "tank_deleted"
    tank_id: str = Field(alias="tankId")


class ValveUpdated(_Event):
    type: Literal["valve_updated"] = "valve_updated"
    valve: Valve


class ValveDeleted(_Event):
    type: Literal["valve_deleted"] = "valve_deleted"
    valve_id: str = Field(alias="valveId")


class PipelineCreated(_Event):
    type: Literal["pipeline_created"] = "pipeline_created"
    pipeline: Pipeline


class PipelineUpdated(_Event):
    type: Literal["pipeline_updated"] = "pipeline_updated"
    pipeline: Pipeline


class PipelineDeleted(_Event):
    type: Literal["pipeline_deleted"] = "pipeline_deleted"
    pipeline_id: int = Field(alias="pipelineId")


class FlowUpdated(_Event):
    type: Literal["flow_updated"] = "flow_updated"
    flow: FlowResult


SystemEvent = Annotated[
    Union[
        ConnectedEvent,
        PongEvent,
        TankUpdated,
        TankDeleted,
        ValveUpdated,
        ValveDeleted,
        PipelineCreated,
        PipelineUpdated,
        PipelineDeleted,
        FlowUpdated,
    ],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(SystemEvent)


def parse_event(data: dict) -> SystemEvent:
    """Valida un payload JSON (dict) y regresa el evento tipado correspondiente."""
    return _event_adapter.validate_python(data)


def dump_event(event: SystemEvent) -> str:
    return event.model_dump_json(by_alias=True)


def is_flow_trigger(event: SystemEvent) -> bool:
    """
    ¿El evento obliga a recalcular el flujo?
    Cambios de tanques, válvulas y tuberías sí; el resto no.
    """
    if isinstance(
        event,
        (
            TankUpdated,
            TankDeleted,
            ValveUpdated,
            ValveDeleted,
            PipelineCreated,
            PipelineUpdated,
            PipelineDeleted,
        ),
    ):
        return True
    if isinstance(event, (ConnectedEvent, PongEvent, FlowUpdated)):
        return False
    raise TypeError(f"Unknown event type: {type(event).__name__}")
