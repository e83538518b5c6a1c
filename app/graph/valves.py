# app/graph/valves.py

from typing import Iterable, List, Optional

from app.graph.geometry import distance_point_to_segment, is_valid_point
from app.services.models import GeoPoint, Valve


def closed_valves(valves: Iterable[Valve]) -> List[Valve]:
    """Válvulas cerradas, respetando el orden de la colección."""
    return [v for v in valves if not v.is_open]


def blocking_valve(
    segment_start: GeoPoint,
    segment_end: GeoPoint,
    valves: Iterable[Valve],
    block_distance: float,
) -> Optional[Valve]:
    """
    Primera válvula cerrada (en orden de colección) a menos de block_distance
    del segmento. Las abiertas nunca bloquean; sin desempate por distancia.
    """
    for valve in valves:
        if valve.is_open:
            continue

        location = valve.location
        if not is_valid_point(location):
            continue

        if distance_point_to_segment(location, segment_start, segment_end) < block_distance:
            return valve

    return None
