# app/config.py
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

# Base de datos SQLite (tanques, válvulas, tuberías, historial de sensores)
WATER_DB_PATH = os.getenv("WATER_DB_PATH", str(BASE_DIR / "data" / "pipeline.db"))

# Umbrales geométricos (metros)
CONNECT_DISTANCE_M = float(os.getenv("CONNECT_DISTANCE_M", "50"))
VALVE_BLOCK_DISTANCE_M = float(os.getenv("VALVE_BLOCK_DISTANCE_M", "15"))
VALVE_SNAP_DISTANCE_M = float(os.getenv("VALVE_SNAP_DISTANCE_M", "100"))

# Tope de iteraciones del BFS (corte suave)
FLOW_MAX_ITERATIONS = int(os.getenv("FLOW_MAX_ITERATIONS", "10000"))

# Ventana de debounce para broadcasts y recálculo de flujo
BROADCAST_DELAY_MS = int(os.getenv("BROADCAST_DELAY_MS", "300"))

# Feed de telemetría (Firebase Realtime Database, API REST). Vacío = deshabilitado
FIREBASE_DATABASE_URL = os.getenv("FIREBASE_DATABASE_URL", "")
SENSOR_POLL_SECONDS = float(os.getenv("SENSOR_POLL_SECONDS", "2"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
