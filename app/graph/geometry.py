# app/graph/geometry.py

import math
from typing import Tuple

from geopy.distance import great_circle

from app.services.models import GeoPoint


def is_valid_point(p: GeoPoint) -> bool:
    """
    Coordenadas finitas y latitud dentro de [-90, 90].
    La geometría inválida se descarta en el núcleo, nunca se lanza excepción.
    """
    return (
        math.isfinite(p.lat)
        and math.isfinite(p.lng)
        and -90.0 <= p.lat <= 90.0
    )


def distance_m(p: GeoPoint, q: GeoPoint) -> float:
    """
    Distancia de gran círculo en metros (misma esfera que usa el mapa).
    """
    return great_circle((p.lat, p.lng), (q.lat, q.lng)).meters


def _project(p: GeoPoint, a: GeoPoint, b: GeoPoint) -> Tuple[float, float]:
    """
    Proyección de p sobre el segmento a-b en el plano (lat, lng).
    t se acota a [0, 1]; si a == b, t = 0 (el punto más cercano es a).
    """
    dx = b.lat - a.lat
    dy = b.lng - a.lng
    len_sq = dx * dx + dy * dy

    t = 0.0
    if len_sq != 0:
        t = ((p.lat - a.lat) * dx + (p.lng - a.lng) * dy) / len_sq
        t = max(0.0, min(1.0, t))

    return a.lat + t * dx, a.lng + t * dy


def closest_point_on_segment(p: GeoPoint, a: GeoPoint, b: GeoPoint) -> GeoPoint:
    lat, lng = _project(p, a, b)
    return GeoPoint(lat=lat, lng=lng)


def distance_point_to_segment(p: GeoPoint, a: GeoPoint, b: GeoPoint) -> float:
    """
    Distancia mínima (metros) de p al segmento a-b.
    Es la primitiva compartida por adyacencia entre tuberías, bloqueo por
    válvulas y ajuste (snap) de válvulas.
    """
    lat, lng = _project(p, a, b)
    return great_circle((p.lat, p.lng), (lat, lng)).meters
