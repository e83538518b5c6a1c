# app/services/flow_state.py

import asyncio
import logging
import sqlite3
from typing import Callable, Optional

from app.algorithms.flow import FlowSettings, compute_flow_for_snapshot
from app.config import BROADCAST_DELAY_MS
from app.services.debounce import Debouncer
from app.services.events import FlowUpdated, SystemEvent, is_flow_trigger
from app.services.models import FlowResult
from app.services.notifier import ConnectionHub, hub
from app.services.repository import WaterRepository, get_repository

logger = logging.getLogger(__name__)

FLOW_KEY = "flow"


class FlowCoordinator:
    """
    Une disparadores (tanque, válvula, tubería) con el motor de flujo.

    - Cada cambio pide un recálculo; las ráfagas se agrupan con debounce
      y solo corre el último.
    - Cada recálculo toma una foto nueva del repositorio y publica el
      resultado como evento flow_updated.
    - Si la foto no se puede leer, se conserva el resultado anterior.
    """

    def __init__(
        self,
        repo_provider: Callable[[], WaterRepository] = get_repository,
        connections: ConnectionHub = hub,
        delay_seconds: float = BROADCAST_DELAY_MS / 1000.0,
        settings: Optional[FlowSettings] = None,
    ) -> None:
        self._repo_provider = repo_provider
        self._hub = connections
        self._debouncer = Debouncer(delay_seconds)
        self.settings = settings or FlowSettings()
        self.latest: Optional[FlowResult] = None

    def compute(self) -> FlowResult:
        """Cálculo síncrono con la foto actual (lo usa GET /api/flow)."""
        snapshot = self._repo_provider().snapshot()
        result = compute_flow_for_snapshot(snapshot, self.settings)
        self.latest = result
        return result

    async def recompute_now(self) -> Optional[FlowResult]:
        try:
            result = self.compute()
        except sqlite3.Error as exc:
            logger.error("Could not read snapshot, keeping previous flow result: %s", exc)
            return self.latest

        logger.info(
            "Flow recomputed: tanks=%d flowing=%d blocked=%d coverage=%.1f%%",
            result.active_tank_count,
            len(result.flowing_segments),
            len(result.blocked_segments),
            result.coverage * 100.0,
        )
        await self._hub.broadcast(FlowUpdated(flow=result))
        return result

    def request_recompute(self) -> asyncio.Task:
        return self._debouncer.schedule(FLOW_KEY, self.recompute_now)

    async def publish(self, event: SystemEvent, debounce_key: Optional[str] = None) -> None:
        """
        Difunde el evento (opcionalmente con debounce por llave) y, si es un
        cambio de red, pide recálculo de flujo.
        """
        if debounce_key is None:
            await self._hub.broadcast(event)
        else:
            self._debouncer.schedule(debounce_key, lambda: self._hub.broadcast(event))

        if is_flow_trigger(event):
            self.request_recompute()

    def shutdown(self) -> None:
        self._debouncer.cancel_all()


coordinator = FlowCoordinator()
