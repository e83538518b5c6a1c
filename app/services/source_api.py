# app/services/source_api.py

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from app.config import FIREBASE_DATABASE_URL, SENSOR_POLL_SECONDS
from app.services.telemetry import normalize_timestamp

logger = logging.getLogger(__name__)

SampleHandler = Callable[[str, Dict[str, Any]], Awaitable[None]]


def latest_sample_url(base_url: str, device_id: str) -> str:
    """
    Endpoint REST de Firebase Realtime Database con la última muestra del
    dispositivo: {base}/devices/{deviceId}/latest.json
    """
    return f"{base_url.rstrip('/')}/devices/{device_id}/latest.json"


def parse_sample(data: Dict[str, Any]) -> Tuple[float, Optional[float], Optional[str]]:
    """
    Traduce la muestra del dispositivo a (nivel, temperatura, timestamp).
    Algunos firmwares mandan sensorHeight en lugar de waterLevel; el
    timestamp (epoch o ISO) se normaliza a ISO UTC, o None si no se entiende.
    """
    raw_level = data.get("waterLevel")
    if raw_level is None:
        raw_level = data.get("sensorHeight", 0)
    water_level = float(raw_level or 0)

    temperature = data.get("temperature")
    temperature = float(temperature) if temperature is not None else None

    return water_level, temperature, normalize_timestamp(data.get("timestamp"))


async def fetch_latest_sample(
    client: httpx.AsyncClient,
    device_id: str,
    base_url: str = FIREBASE_DATABASE_URL,
) -> Optional[Dict[str, Any]]:
    """
    Llama al feed y regresa la última muestra (dict) o None si no hay datos
    (Firebase responde `null` para un dispositivo sin muestras).
    Lanza httpx.HTTPError si la respuesta falla y ValueError si el cuerpo no es JSON.
    """
    resp = await client.get(latest_sample_url(base_url, device_id))
    resp.raise_for_status()
    data = resp.json()
    return data if isinstance(data, dict) else None


class DevicePoller:
    """
    Una tarea de sondeo por dispositivo mientras haya suscriptores SSE.
    Solo entrega muestras con timestamp nuevo.
    """

    def __init__(
        self,
        on_sample: SampleHandler,
        base_url: str = FIREBASE_DATABASE_URL,
        interval: float = SENSOR_POLL_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.on_sample = on_sample
        self.base_url = base_url
        self.interval = interval
        self.transport = transport
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def is_polling(self, device_id: str) -> bool:
        task = self._tasks.get(device_id)
        return task is not None and not task.done()

    def start(self, device_id: str) -> bool:
        if not self.enabled:
            return False
        if self.is_polling(device_id):
            logger.debug("Already listening to device %s", device_id)
            return False

        logger.info("Starting telemetry listener for device %s", device_id)
        self._tasks[device_id] = asyncio.get_running_loop().create_task(self._poll(device_id))
        return True

    def stop(self, device_id: str) -> None:
        task = self._tasks.pop(device_id, None)
        if task is not None:
            task.cancel()
            logger.info("Stopped telemetry listener for device %s", device_id)

    def stop_all(self) -> None:
        for device_id in list(self._tasks):
            self.stop(device_id)

    async def _poll(self, device_id: str) -> None:
        last_marker: Any = None

        async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
            while True:
                try:
                    data = await fetch_latest_sample(client, device_id, self.base_url)
                except (httpx.HTTPError, ValueError) as exc:
                    logger.error("Telemetry feed error for device %s: %s", device_id, exc)
                    data = None

                if data is not None:
                    # sin timestamp, la muestra completa sirve de marca
                    marker = data.get("timestamp", data)
                    if marker != last_marker:
                        last_marker = marker
                        await self.on_sample(device_id, data)
                else:
                    logger.debug("No data for device %s", device_id)

                await asyncio.sleep(self.interval)
