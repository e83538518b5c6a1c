# app/api/routes_ws.py

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.events import ConnectedEvent, PongEvent
from app.services.notifier import hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    Canal de sincronización con el mapa: recibe todos los eventos del sistema
    (tanques, válvulas, tuberías, flujo). El cliente puede mandar {"type": "ping"}.
    """
    await ws.accept()
    hub.register(ws)

    try:
        await hub.send(ws, ConnectedEvent())

        while True:
            message = await ws.receive_text()
            try:
                data = json.loads(message)
            except ValueError:
                logger.error("Error parsing WebSocket message: %r", message)
                continue

            logger.debug("Received from client: %s", data)
            if isinstance(data, dict) and data.get("type") == "ping":
                await hub.send(ws, PongEvent())
    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(ws)
