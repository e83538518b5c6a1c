# app/api/routes_sensor.py

import json
import logging
from typing import Any, AsyncIterator, Dict, List

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from app.models import SensorDataRequest, SensorIngestResponse
from app.services.models import SensorReading
from app.services.notifier import device_channels
from app.services.repository import NotFoundError, get_repository
from app.services.source_api import DevicePoller, parse_sample
from app.services.telemetry import ingest_sample

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sensor"])


def _sse(payload: str) -> str:
    return f"data: {payload}\n\n"


def _publish_reading(reading: SensorReading) -> int:
    return device_channels.publish(reading.device_id, reading.model_dump_json(by_alias=True))


async def _on_feed_sample(device_id: str, data: Dict[str, Any]) -> None:
    """Muestra nueva del feed en tiempo real -> historial + clientes SSE."""
    water_level, temperature, timestamp = parse_sample(data)
    try:
        reading = ingest_sample(
            get_repository(),
            device_id,
            water_level,
            temperature=temperature,
            timestamp=timestamp,
            raw_data=data,
        )
    except NotFoundError:
        logger.warning("Tank not found for device %s, dropping feed sample", device_id)
        return

    sent = _publish_reading(reading)
    logger.info("Broadcasted sensor data to %d SSE client(s)", sent)


poller = DevicePoller(on_sample=_on_feed_sample)


@router.post("/sensor/data", response_model=SensorIngestResponse)
async def ingest_sensor_data(req: SensorDataRequest):
    try:
        reading = ingest_sample(
            get_repository(),
            req.deviceId,
            req.waterLevel,
            temperature=req.temperature,
            timestamp=req.timestamp,
            raw_data=req.model_dump(),
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Tank not found for this device")

    _publish_reading(reading)
    return SensorIngestResponse(success=True, id=reading.id, metrics=reading)


@router.get("/sensor/device/{device_id}/latest", response_model=SensorReading)
def latest_for_device(device_id: str):
    reading = get_repository().latest_reading_for_device(device_id)
    if reading is None:
        raise HTTPException(status_code=404, detail="No data found")
    return reading


@router.get("/sensor/device/{device_id}/history", response_model=List[SensorReading])
def history_for_device(
    device_id: str,
    hours: float = Query(24, gt=0, description="Ventana hacia atrás en horas"),
    limit: int = Query(100, ge=1, le=10000),
):
    return get_repository().history_for_device(device_id, hours=hours, limit=limit)


@router.get("/sensor/tank/{tank_id}/latest", response_model=SensorReading)
def latest_for_tank(tank_id: str):
    reading = get_repository().latest_reading_for_tank(tank_id)
    if reading is None:
        raise HTTPException(status_code=404, detail="No data found")
    return reading


@router.get("/stream/device/{device_id}")
async def stream_device(device_id: str):
    """
    Stream SSE de un dispositivo:
      1) mensaje de conexión,
      2) último dato conocido (si existe),
      3) cada muestra nueva (POST /sensor/data o feed en tiempo real).
    El feed del dispositivo se escucha solo mientras haya clientes.
    """
    repo = get_repository()
    queue = device_channels.subscribe(device_id)

    if repo.get_tank_by_device(device_id) is not None:
        poller.start(device_id)

    async def event_stream() -> AsyncIterator[str]:
        try:
            yield _sse(json.dumps({"status": "connected", "deviceId": device_id}))

            last = repo.latest_reading_for_device(device_id)
            if last is not None:
                yield _sse(last.model_dump_json(by_alias=True))

            while True:
                payload = await queue.get()
                yield _sse(payload)
        finally:
            logger.info("Client disconnected from SSE stream for device %s", device_id)
            if device_channels.unsubscribe(device_id, queue):
                poller.stop(device_id)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
