# app/services/notifier.py

import asyncio
import logging
from typing import Dict, List, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from app.services.events import SystemEvent, dump_event

logger = logging.getLogger(__name__)


class ConnectionHub:
    """
    Sesiones WebSocket conectadas. broadcast() manda el evento a todas las
    sesiones abiertas y descarta las que ya no responden.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()

    def __len__(self) -> int:
        return len(self._clients)

    def register(self, ws: WebSocket) -> None:
        self._clients.add(ws)
        logger.info("WebSocket client connected (%d total)", len(self._clients))

    def unregister(self, ws: WebSocket) -> None:
        self._clients.discard(ws)
        logger.info("WebSocket client disconnected (%d total)", len(self._clients))

    async def send(self, ws: WebSocket, event: SystemEvent) -> None:
        await ws.send_text(dump_event(event))

    async def broadcast(self, event: SystemEvent) -> int:
        if not self._clients:
            logger.debug("No WebSocket clients, skipping %s broadcast", event.type)
            return 0

        message = dump_event(event)
        sent = 0
        dead: List[WebSocket] = []

        for ws in list(self._clients):
            if ws.client_state != WebSocketState.CONNECTED:
                dead.append(ws)
                continue
            try:
                await ws.send_text(message)
                sent += 1
            except Exception as exc:
                logger.error("Error broadcasting %s: %s", event.type, exc)
                dead.append(ws)

        for ws in dead:
            self._clients.discard(ws)

        logger.info(
            "Broadcasted %s to %d/%d WebSocket client(s) (%d removed)",
            event.type,
            sent,
            sent + len(dead),
            len(dead),
        )
        return sent

    async def close_all(self, code: int = 1000) -> None:
        for ws in list(self._clients):
            try:
                await ws.close(code=code)
            except Exception as exc:
                logger.error("Error closing client: %s", exc)
        self._clients.clear()


class DeviceChannels:
    """
    Suscriptores SSE por dispositivo: cada suscripción es una cola asyncio.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, List[asyncio.Queue]] = {}

    def subscribers(self, device_id: str) -> int:
        return len(self._queues.get(device_id, []))

    def devices(self) -> List[str]:
        return list(self._queues)

    def subscribe(self, device_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.setdefault(device_id, []).append(queue)
        logger.info("SSE client subscribed to device %s", device_id)
        return queue

    def unsubscribe(self, device_id: str, queue: asyncio.Queue) -> bool:
        """Quita la suscripción. Regresa True si el dispositivo se quedó sin suscriptores."""
        queues = self._queues.get(device_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._queues.pop(device_id, None)
            return True
        return False

    def publish(self, device_id: str, payload: str) -> int:
        queues = self._queues.get(device_id, [])
        for queue in queues:
            queue.put_nowait(payload)
        logger.debug("Published sensor data to %d SSE client(s) for %s", len(queues), device_id)
        return len(queues)


# Instancias compartidas por toda la app
hub = ConnectionHub()
device_channels = DeviceChannels()
