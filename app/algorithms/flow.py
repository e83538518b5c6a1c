# app/algorithms/flow.py

import logging
from collections import deque
from time import perf_counter
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel

from app.config import CONNECT_DISTANCE_M, FLOW_MAX_ITERATIONS, VALVE_BLOCK_DISTANCE_M
from app.graph.geometry import is_valid_point
from app.graph.network import (
    find_connection,
    find_tank_entry,
    usable_nodes,
)
from app.graph.valves import blocking_valve
from app.services.models import (
    BlockedSegment,
    FlowingSegment,
    FlowResult,
    GeoPoint,
    Pipeline,
    SystemSnapshot,
    Tank,
    Valve,
)

logger = logging.getLogger(__name__)


class FlowSettings(BaseModel):
    connect_distance: float = CONNECT_DISTANCE_M
    block_distance: float = VALVE_BLOCK_DISTANCE_M
    max_iterations: int = FLOW_MAX_ITERATIONS


# (pipeline_id, node_index, source_tank)
QueueEntry = Tuple[int, int, str]


def _usable_pipelines(pipelines: Iterable[Pipeline]) -> Dict[int, List[GeoPoint]]:
    """
    pipeline_id -> nodos, en orden de colección. Las tuberías inertes
    (menos de 2 nodos, coordenadas inválidas) no entran al grafo.
    """
    usable: Dict[int, List[GeoPoint]] = {}
    for pipeline in pipelines:
        if pipeline.id in usable:
            continue
        nodes = usable_nodes(pipeline)
        if nodes:
            usable[pipeline.id] = nodes
    return usable


def compute_flow(
    active_tanks: Iterable[Tank],
    pipelines: Iterable[Pipeline],
    closed_valves: Iterable[Valve],
    connect_distance: float = CONNECT_DISTANCE_M,
    block_distance: float = VALVE_BLOCK_DISTANCE_M,
    max_iterations: int = FLOW_MAX_ITERATIONS,
) -> FlowResult:
    """
    BFS multi-fuente desde todos los tanques activos sobre las tuberías.

    - Nodo del grafo: (pipeline_id, node_index). Unidad de recorrido: segmento.
    - Siembra: por tanque y por tubería, UNA entrada (primer nodo o segmento
      a menos de connect_distance).
    - Al sacar una entrada se recorre la tubería desde el segmento 0; la
      primera válvula cerrada marca el segmento como bloqueado y corta el
      recorrido de esa tubería (lo que sigue queda sin alcanzar).
    - Se propaga a tuberías adyacentes aún no alcanzadas, heredando el tanque.
    - max_iterations es un corte suave: se regresa el resultado parcial.
    """
    start = perf_counter()

    usable = _usable_pipelines(pipelines)

    tanks = [t for t in active_tanks if t.is_active and is_valid_point(t.location)]
    valves = [v for v in closed_valves if not v.is_open]

    queue: Deque[QueueEntry] = deque()
    reached: Set[int] = set()

    for tank in tanks:
        location = tank.location
        for pipeline_id, nodes in usable.items():
            entry = find_tank_entry(location, nodes, connect_distance)
            if entry is not None:
                queue.append((pipeline_id, entry, tank.tank_id))
                reached.add(pipeline_id)

    visited_nodes: Set[Tuple[int, int]] = set()
    flowing: Dict[Tuple[int, int], FlowingSegment] = {}
    blocked: Dict[Tuple[int, int], BlockedSegment] = {}

    iterations = 0
    truncated = False

    while queue:
        if iterations >= max_iterations:
            truncated = True
            break
        iterations += 1

        pipeline_id, node_index, source_tank = queue.popleft()
        node_key = (pipeline_id, node_index)
        if node_key in visited_nodes:
            continue
        visited_nodes.add(node_key)

        nodes = usable[pipeline_id]

        for i in range(len(nodes) - 1):
            seg_key = (pipeline_id, i)
            if seg_key in flowing or seg_key in blocked:
                continue

            valve = blocking_valve(nodes[i], nodes[i + 1], valves, block_distance)
            if valve is not None:
                blocked[seg_key] = BlockedSegment(
                    pipeline_id=pipeline_id,
                    segment_index=i,
                    start=nodes[i],
                    end=nodes[i + 1],
                    blocked_by=valve.valve_id,
                )
                break

            flowing[seg_key] = FlowingSegment(
                pipeline_id=pipeline_id,
                segment_index=i,
                start=nodes[i],
                end=nodes[i + 1],
                source_tank=source_tank,
            )

        for other_id, other_nodes in usable.items():
            if other_id == pipeline_id or other_id in reached:
                continue
            entry = find_connection(nodes, other_nodes, connect_distance)
            if entry is not None:
                reached.add(other_id)
                queue.append((other_id, entry, source_tank))

    if truncated:
        logger.warning(
            "Flow traversal stopped after %d iterations (%d entries pending); result is partial",
            iterations,
            len(queue),
        )

    result = FlowResult(
        flowing_segments=tuple(flowing.values()),
        blocked_segments=tuple(blocked.values()),
        total_segment_count=sum(len(nodes) - 1 for nodes in usable.values()),
        active_tank_count=len(tanks),
        iterations=iterations,
        truncated=truncated,
    )

    logger.debug(
        "Flow computed in %.2f ms: tanks=%d flowing=%d blocked=%d total=%d",
        (perf_counter() - start) * 1000.0,
        result.active_tank_count,
        len(result.flowing_segments),
        len(result.blocked_segments),
        result.total_segment_count,
    )
    return result


def compute_flow_for_snapshot(
    snapshot: SystemSnapshot,
    settings: Optional[FlowSettings] = None,
) -> FlowResult:
    settings = settings or FlowSettings()
    return compute_flow(
        active_tanks=snapshot.active_tanks(),
        pipelines=snapshot.pipelines,
        closed_valves=snapshot.closed_valves(),
        connect_distance=settings.connect_distance,
        block_distance=settings.block_distance,
        max_iterations=settings.max_iterations,
    )
