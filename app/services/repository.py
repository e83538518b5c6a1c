# app/services/repository.py

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic.alias_generators import to_camel

from app.config import WATER_DB_PATH
from app.services.models import (
    GeoPoint,
    Pipeline,
    SensorReading,
    SystemSnapshot,
    Tank,
    Valve,
)

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    pass


class DuplicateError(ValueError):
    """Choque de llave primaria o UNIQUE."""


class InvalidReferenceError(ValueError):
    """Llave foránea inexistente o columna NOT NULL en nulo."""


SCHEMA = """
CREATE TABLE IF NOT EXISTS pipelines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    nodes TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tanks (
    tankId TEXT PRIMARY KEY,
    deviceId TEXT,
    name TEXT NOT NULL,
    state TEXT,
    district TEXT,
    mandal TEXT,
    habitation TEXT,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    type TEXT NOT NULL,
    shape TEXT NOT NULL,
    diameter REAL NOT NULL,
    height REAL NOT NULL,
    sensorHeight REAL NOT NULL,
    capacity REAL NOT NULL,
    waterLevel REAL DEFAULT 0,
    isActive INTEGER DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS gate_valves (
    valveId TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    category TEXT NOT NULL,
    parentValveId TEXT,
    households INTEGER NOT NULL,
    flowRate REAL NOT NULL,
    mandal TEXT,
    habitation TEXT,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    isOpen INTEGER DEFAULT 1,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (parentValveId) REFERENCES gate_valves(valveId) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS sensor_data_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    deviceId TEXT NOT NULL,
    tankId TEXT,
    waterLevel REAL,
    volumeLiters REAL,
    pressure REAL,
    temperature REAL,
    percentageFull REAL,
    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
    rawData TEXT,
    FOREIGN KEY (tankId) REFERENCES tanks(tankId) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sensor_deviceId ON sensor_data_history(deviceId);
CREATE INDEX IF NOT EXISTS idx_sensor_timestamp ON sensor_data_history(timestamp);
"""

_TANK_COLUMNS = [
    "tankId", "deviceId", "name", "state", "district", "mandal", "habitation",
    "latitude", "longitude", "type", "shape", "diameter", "height",
    "sensorHeight", "capacity", "waterLevel", "isActive",
]

_VALVE_COLUMNS = [
    "valveId", "name", "type", "category", "parentValveId", "households",
    "flowRate", "mandal", "habitation", "latitude", "longitude", "isOpen",
]


def _parse_nodes(raw: str, pipeline_id: int) -> List[GeoPoint]:
    """
    Los nodos se guardan como JSON. Si el JSON está corrupto la tubería
    se carga vacía (inerte) en lugar de tumbar la lectura completa.
    """
    try:
        data = json.loads(raw)
        return [GeoPoint(lat=float(n["lat"]), lng=float(n["lng"])) for n in data]
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("Pipeline %s has malformed nodes, treating as empty: %s", pipeline_id, exc)
        return []


def _dump_nodes(nodes: List[GeoPoint]) -> str:
    return json.dumps([{"lat": n.lat, "lng": n.lng} for n in nodes])


def _to_columns(fields: Dict[str, Any], allowed: List[str]) -> Dict[str, Any]:
    """
    Convierte nombres de campo (snake_case o camelCase) a columnas.
    Los booleanos se guardan como 0/1 (columnas INTEGER).
    """
    columns: Dict[str, Any] = {}
    for key, value in fields.items():
        column = key if key in allowed else to_camel(key)
        if column not in allowed:
            raise ValueError(f"Unknown field: {key}")
        if isinstance(value, bool):
            value = 1 if value else 0
        columns[column] = value
    return columns


class WaterRepository:
    """
    Almacén SQLite de tuberías, tanques, válvulas e historial de sensores.
    También es el proveedor de "fotos" (snapshots) para el cálculo de flujo.
    """

    def __init__(self, db_path: str = WATER_DB_PATH) -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cur = self._conn.execute(sql, params)
                self._conn.commit()
                return cur
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                if str(exc).startswith("UNIQUE constraint failed"):
                    raise DuplicateError(str(exc)) from exc
                raise InvalidReferenceError(str(exc)) from exc

    # ---------- Tuberías ----------

    def _row_to_pipeline(self, row: sqlite3.Row) -> Pipeline:
        return Pipeline(
            id=row["id"],
            nodes=_parse_nodes(row["nodes"], row["id"]),
            created_at=row["created_at"],
        )

    def create_pipeline(self, nodes: List[GeoPoint]) -> Pipeline:
        cur = self._execute("INSERT INTO pipelines (nodes) VALUES (?)", (_dump_nodes(nodes),))
        return self.get_pipeline(cur.lastrowid)

    def list_pipelines(self) -> List[Pipeline]:
        rows = self._query("SELECT * FROM pipelines ORDER BY id ASC")
        return [self._row_to_pipeline(r) for r in rows]

    def get_pipeline(self, pipeline_id: int) -> Pipeline:
        rows = self._query("SELECT * FROM pipelines WHERE id = ?", (pipeline_id,))
        if not rows:
            raise NotFoundError(f"Pipeline {pipeline_id} not found")
        return self._row_to_pipeline(rows[0])

    def update_pipeline(self, pipeline_id: int, nodes: List[GeoPoint]) -> Pipeline:
        cur = self._execute(
            "UPDATE pipelines SET nodes = ? WHERE id = ?",
            (_dump_nodes(nodes), pipeline_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Pipeline {pipeline_id} not found")
        return self.get_pipeline(pipeline_id)

    def delete_pipeline(self, pipeline_id: int) -> None:
        cur = self._execute("DELETE FROM pipelines WHERE id = ?", (pipeline_id,))
        if cur.rowcount == 0:
            raise NotFoundError(f"Pipeline {pipeline_id} not found")

    # ---------- Tanques ----------

    def create_tank(self, tank: Tank) -> Tank:
        data = tank.model_dump(by_alias=True, exclude={"created_at"})
        columns = _to_columns(data, _TANK_COLUMNS)
        placeholders = ", ".join("?" for _ in columns)
        self._execute(
            f"INSERT INTO tanks ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(columns.values()),
        )
        return self.get_tank(tank.tank_id)

    def list_all_tanks(self) -> List[Tank]:
        rows = self._query("SELECT * FROM tanks ORDER BY created_at ASC, rowid ASC")
        return [Tank.model_validate(dict(r)) for r in rows]

    def list_active_tanks(self) -> List[Tank]:
        return [t for t in self.list_all_tanks() if t.is_active]

    def get_tank(self, tank_id: str) -> Tank:
        rows = self._query("SELECT * FROM tanks WHERE tankId = ?", (tank_id,))
        if not rows:
            raise NotFoundError(f"Tank {tank_id} not found")
        return Tank.model_validate(dict(rows[0]))

    def get_tank_by_device(self, device_id: str) -> Optional[Tank]:
        rows = self._query("SELECT * FROM tanks WHERE deviceId = ?", (device_id,))
        if not rows:
            return None
        return Tank.model_validate(dict(rows[0]))

    def update_tank(self, tank_id: str, fields: Dict[str, Any]) -> Tank:
        fields = {k: v for k, v in fields.items() if k not in ("tank_id", "tankId")}
        if not fields:
            raise ValueError("No fields to update")
        columns = _to_columns(fields, _TANK_COLUMNS)
        assignments = ", ".join(f"{c} = ?" for c in columns)
        cur = self._execute(
            f"UPDATE tanks SET {assignments} WHERE tankId = ?",
            tuple(columns.values()) + (tank_id,),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Tank {tank_id} not found")
        return self.get_tank(tank_id)

    def set_water_level(self, device_id: str, water_level: float) -> None:
        self._execute("UPDATE tanks SET waterLevel = ? WHERE deviceId = ?", (water_level, device_id))

    def delete_tank(self, tank_id: str) -> None:
        cur = self._execute("DELETE FROM tanks WHERE tankId = ?", (tank_id,))
        if cur.rowcount == 0:
            raise NotFoundError(f"Tank {tank_id} not found")

    # ---------- Válvulas ----------

    def create_valve(self, valve: Valve) -> Valve:
        data = valve.model_dump(by_alias=True, exclude={"created_at"})
        columns = _to_columns(data, _VALVE_COLUMNS)
        placeholders = ", ".join("?" for _ in columns)
        self._execute(
            f"INSERT INTO gate_valves ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(columns.values()),
        )
        return self.get_valve(valve.valve_id)

    def list_valves(self) -> List[Valve]:
        rows = self._query("SELECT * FROM gate_valves ORDER BY created_at ASC, rowid ASC")
        return [Valve.model_validate(dict(r)) for r in rows]

    def list_closed_valves(self) -> List[Valve]:
        return [v for v in self.list_valves() if not v.is_open]

    def get_valve(self, valve_id: str) -> Valve:
        rows = self._query("SELECT * FROM gate_valves WHERE valveId = ?", (valve_id,))
        if not rows:
            raise NotFoundError(f"Valve {valve_id} not found")
        return Valve.model_validate(dict(rows[0]))

    def update_valve(self, valve_id: str, fields: Dict[str, Any]) -> Valve:
        fields = {k: v for k, v in fields.items() if k not in ("valve_id", "valveId")}
        if not fields:
            raise ValueError("No fields to update")
        columns = _to_columns(fields, _VALVE_COLUMNS)
        if "parentValveId" in columns:
            columns["parentValveId"] = columns["parentValveId"] or None
        assignments = ", ".join(f"{c} = ?" for c in columns)
        cur = self._execute(
            f"UPDATE gate_valves SET {assignments} WHERE valveId = ?",
            tuple(columns.values()) + (valve_id,),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Valve {valve_id} not found")
        return self.get_valve(valve_id)

    def toggle_valve(self, valve_id: str) -> Valve:
        with self._lock:
            valve = self.get_valve(valve_id)
            return self.update_valve(valve_id, {"is_open": not valve.is_open})

    def delete_valve(self, valve_id: str) -> None:
        with self._lock:
            self._execute(
                "UPDATE gate_valves SET parentValveId = NULL WHERE parentValveId = ?",
                (valve_id,),
            )
            cur = self._execute("DELETE FROM gate_valves WHERE valveId = ?", (valve_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Valve {valve_id} not found")

    # ---------- Historial de sensores ----------

    def _row_to_reading(self, row: sqlite3.Row) -> SensorReading:
        try:
            raw = json.loads(row["rawData"]) if row["rawData"] else {}
        except ValueError:
            raw = {}
        return SensorReading(
            id=row["id"],
            device_id=row["deviceId"],
            tank_id=row["tankId"],
            water_level=row["waterLevel"],
            volume_liters=row["volumeLiters"],
            pressure_kpa=row["pressure"],
            percentage_full=row["percentageFull"],
            temperature=row["temperature"],
            timestamp=str(row["timestamp"]),
            raw_data=raw if isinstance(raw, dict) else {"value": raw},
        )

    def add_reading(self, reading: SensorReading) -> SensorReading:
        cur = self._execute(
            """
            INSERT INTO sensor_data_history
            (deviceId, tankId, waterLevel, volumeLiters, pressure, temperature,
             percentageFull, timestamp, rawData)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                reading.device_id,
                reading.tank_id,
                reading.water_level,
                reading.volume_liters,
                reading.pressure_kpa,
                reading.temperature,
                reading.percentage_full,
                reading.timestamp,
                json.dumps(reading.raw_data, default=str),
            ),
        )
        return reading.model_copy(update={"id": cur.lastrowid})

    def latest_reading_for_device(self, device_id: str) -> Optional[SensorReading]:
        rows = self._query(
            """
            SELECT * FROM sensor_data_history
            WHERE deviceId = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            (device_id,),
        )
        return self._row_to_reading(rows[0]) if rows else None

    def latest_reading_for_tank(self, tank_id: str) -> Optional[SensorReading]:
        rows = self._query(
            """
            SELECT * FROM sensor_data_history
            WHERE tankId = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            (tank_id,),
        )
        return self._row_to_reading(rows[0]) if rows else None

    def history_for_device(self, device_id: str, hours: float = 24, limit: int = 100) -> List[SensorReading]:
        since = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
        rows = self._query(
            """
            SELECT * FROM sensor_data_history
            WHERE deviceId = ? AND timestamp >= ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (device_id, since, int(limit)),
        )
        return [self._row_to_reading(r) for r in rows]

    # ---------- Fotos para el motor de flujo ----------

    def snapshot(self) -> SystemSnapshot:
        """
        Foto consistente (todas las lecturas bajo el mismo candado).
        El motor nunca lee del almacén durante el recorrido.
        """
        with self._lock:
            return SystemSnapshot(
                pipelines=tuple(self.list_pipelines()),
                tanks=tuple(self.list_all_tanks()),
                valves=tuple(self.list_valves()),
            )


# Instancia compartida (se crea una sola vez)
_repository: Optional[WaterRepository] = None


def init_repository(db_path: str = WATER_DB_PATH) -> WaterRepository:
    global _repository

    if _repository is not None:
        _repository.close()

    _repository = WaterRepository(db_path)
    logger.info("Using SQLite database at %s", db_path)
    return _repository


def get_repository() -> WaterRepository:
    if _repository is None:
        return init_repository()
    return _repository
