# app/graph/network.py

from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from app.graph.geometry import (
    closest_point_on_segment,
    distance_m,
    distance_point_to_segment,
    is_valid_point,
)
from app.services.models import GeoPoint, Pipeline


def usable_nodes(pipeline: Pipeline) -> List[GeoPoint]:
    """
    Nodos de la tubería si es utilizable por el núcleo; lista vacía si no.
    Una tubería con menos de 2 nodos o con coordenadas no finitas es inerte.
    """
    nodes = list(pipeline.nodes)
    if len(nodes) < 2:
        return []
    if not all(is_valid_point(n) for n in nodes):
        return []
    return nodes


def segment_count(nodes: Sequence[GeoPoint]) -> int:
    return max(0, len(nodes) - 1)


def pipeline_segments(pipeline: Pipeline) -> List[Tuple[int, GeoPoint, GeoPoint]]:
    """
    Segmentos (índice, inicio, fin) de la tubería en orden de nodos.
    """
    nodes = usable_nodes(pipeline)
    return [(i, nodes[i], nodes[i + 1]) for i in range(segment_count(nodes))]


def find_tank_entry(
    location: GeoPoint,
    nodes: Sequence[GeoPoint],
    connect_distance: float,
) -> Optional[int]:
    """
    Punto de entrada de un tanque a una tubería:
      1) primer nodo a menos de connect_distance,
      2) si no hay, primer segmento a menos de connect_distance (índice de inicio).
    Gana la primera coincidencia en orden de iteración.
    """
    for idx, node in enumerate(nodes):
        if distance_m(location, node) < connect_distance:
            return idx

    for i in range(segment_count(nodes)):
        if distance_point_to_segment(location, nodes[i], nodes[i + 1]) < connect_distance:
            return i

    return None


def find_connection(
    current_nodes: Sequence[GeoPoint],
    other_nodes: Sequence[GeoPoint],
    connect_distance: float,
) -> Optional[int]:
    """
    Índice de nodo de entrada en `other` si las tuberías son adyacentes.

    Orden de revisión (gana la primera coincidencia):
      - para cada nodo de current: nodo-a-nodo y luego nodo-a-segmento de other,
      - segmento de current a nodo de other.
    No se revisa intersección segmento-segmento.
    """
    for current_node in current_nodes:
        for other_idx, other_node in enumerate(other_nodes):
            if distance_m(current_node, other_node) < connect_distance:
                return other_idx

        for i in range(segment_count(other_nodes)):
            d = distance_point_to_segment(current_node, other_nodes[i], other_nodes[i + 1])
            if d < connect_distance:
                return i

    for i in range(segment_count(current_nodes)):
        for other_idx, other_node in enumerate(other_nodes):
            d = distance_point_to_segment(other_node, current_nodes[i], current_nodes[i + 1])
            if d < connect_distance:
                return other_idx

    return None


def pipelines_adjacent(a: Pipeline, b: Pipeline, connect_distance: float) -> bool:
    """
    ¿Algún punto de A está a menos de connect_distance de algún punto/segmento de B?
    Simétrica: las tres revisiones cubren ambos sentidos.
    """
    a_nodes = usable_nodes(a)
    b_nodes = usable_nodes(b)
    if not a_nodes or not b_nodes:
        return False
    return find_connection(a_nodes, b_nodes, connect_distance) is not None


def erase_section(nodes: Sequence[GeoPoint], start_idx: int, end_idx: int) -> List[GeoPoint]:
    """
    Borra los nodos intermedios entre dos índices (sin importar el orden),
    conservando ambos extremos. Usado por la herramienta de borrado del mapa.
    """
    if not (0 <= start_idx < len(nodes)) or not (0 <= end_idx < len(nodes)):
        raise ValueError(f"Node index out of range for pipeline with {len(nodes)} nodes")

    start = min(start_idx, end_idx)
    end = max(start_idx, end_idx)
    new_nodes = list(nodes[: start + 1]) + list(nodes[max(end, start + 1):])

    if len(new_nodes) < 2:
        raise ValueError("Cannot erase - would leave less than 2 nodes")
    return new_nodes


class SnapResult(BaseModel):
    snap_point: GeoPoint
    pipeline_id: int
    segment_index: int
    distance_m: float


def nearest_pipeline_point(
    point: GeoPoint,
    pipelines: Iterable[Pipeline],
) -> Optional[SnapResult]:
    """
    Punto más cercano sobre cualquier segmento de cualquier tubería.
    Sirve para "pegar" una válvula a la tubería al colocarla en el mapa.
    """
    if not is_valid_point(point):
        return None

    best: Optional[SnapResult] = None

    for pipeline in pipelines:
        for i, start, end in pipeline_segments(pipeline):
            candidate = closest_point_on_segment(point, start, end)
            d = distance_m(point, candidate)
            if best is None or d < best.distance_m:
                best = SnapResult(
                    snap_point=candidate,
                    pipeline_id=pipeline.id,
                    segment_index=i,
                    distance_m=d,
                )

    return best
