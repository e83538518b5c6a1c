# app/services/telemetry.py

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.services.models import SensorReading, Tank
from app.services.repository import NotFoundError, WaterRepository

logger = logging.getLogger(__name__)

GRAVITY = 9.81
WATER_DENSITY = 1000.0  # kg/m3

# epoch por encima de esto viene en milisegundos (1e11 s es el año 5138)
EPOCH_MS_THRESHOLD = 1e11


def calculate_water_metrics(
    water_level: float,
    diameter: float,
    capacity: float,
    shape: str,
) -> Dict[str, float]:
    """
    Convierte el nivel del sensor (m) en métricas del tanque:
    - Cylinder: volumen = pi * (d/2)^2 * h
    - Cuboid:   volumen = d * d * h
    - otra forma: volumen 0
    Volumen en litros, presión hidrostática en kPa, todo redondeado a 2 decimales.
    """
    if shape == "Cylinder":
        volume_m3 = math.pi * (diameter / 2.0) ** 2 * water_level
    elif shape == "Cuboid":
        volume_m3 = diameter * diameter * water_level
    else:
        volume_m3 = 0.0

    volume_liters = volume_m3 * 1000.0
    percentage_full = (volume_liters / capacity) * 100.0 if capacity > 0 else 0.0
    pressure_kpa = (WATER_DENSITY * GRAVITY * water_level) / 1000.0

    return {
        "water_level": round(water_level, 2),
        "volume_liters": round(volume_liters, 2),
        "percentage_full": round(percentage_full, 2),
        "pressure_kpa": round(pressure_kpa, 2),
    }


def normalize_timestamp(value: Any) -> Optional[str]:
    """
    Timestamp del dispositivo -> ISO 8601 en UTC (el formato del historial).
    Acepta epoch en segundos o milisegundos (número o texto) e ISO con o sin
    zona (sin zona se asume UTC). Regresa None si no se puede interpretar.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc).isoformat()

    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None

    seconds = value / 1000.0 if abs(value) >= EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def build_reading(
    tank: Tank,
    device_id: str,
    water_level: float,
    temperature: Optional[float] = None,
    timestamp: Any = None,
    raw_data: Optional[Dict[str, Any]] = None,
) -> SensorReading:
    metrics = calculate_water_metrics(
        water_level,
        tank.diameter,
        tank.capacity,
        tank.shape,
    )
    return SensorReading(
        device_id=device_id,
        tank_id=tank.tank_id,
        temperature=temperature,
        timestamp=normalize_timestamp(timestamp) or datetime.now(timezone.utc).isoformat(),
        raw_data=raw_data or {},
        **metrics,
    )


def ingest_sample(
    repo: WaterRepository,
    device_id: str,
    water_level: float,
    temperature: Optional[float] = None,
    timestamp: Any = None,
    raw_data: Optional[Dict[str, Any]] = None,
) -> SensorReading:
    """
    Muestra de dispositivo -> métricas -> historial + nivel actual del tanque.
    Lanza NotFoundError si ningún tanque tiene asignado ese deviceId.
    """
    tank = repo.get_tank_by_device(device_id)
    if tank is None:
        raise NotFoundError(f"Tank not found for device {device_id}")

    reading = build_reading(
        tank,
        device_id,
        water_level,
        temperature=temperature,
        timestamp=timestamp,
        raw_data=raw_data,
    )
    stored = repo.add_reading(reading)
    repo.set_water_level(device_id, stored.water_level)

    logger.info("Stored sensor data for device %s (tank %s)", device_id, tank.tank_id)
    return stored
