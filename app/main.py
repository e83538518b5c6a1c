# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes_basic import router as basic_router
from app.api.routes_flow import router as flow_router
from app.api.routes_pipelines import router as pipelines_router
from app.api.routes_sensor import poller
from app.api.routes_sensor import router as sensor_router
from app.api.routes_tanks import router as tanks_router
from app.api.routes_valves import router as valves_router
from app.api.routes_ws import router as ws_router
from app.config import LOG_LEVEL
from app.services.flow_state import coordinator
from app.services.notifier import hub
from app.services.repository import get_repository

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - [%(name)s:%(funcName)s:%(lineno)d] - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    repo = get_repository()
    logger.info("Water monitoring backend started (db=%s)", repo.db_path)
    if not poller.enabled:
        logger.info("FIREBASE_DATABASE_URL not set, real-time telemetry feed disabled")

    yield

    logger.info("Shutting down server...")
    coordinator.shutdown()
    poller.stop_all()
    await hub.close_all(code=1000)


app = FastAPI(
    title="Water Monitoring Backend",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS totalmente abierto (el mapa se sirve desde otro origen)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(basic_router)
app.include_router(ws_router)
app.include_router(pipelines_router, prefix="/api")
app.include_router(tanks_router, prefix="/api")
app.include_router(valves_router, prefix="/api")
app.include_router(sensor_router, prefix="/api")
app.include_router(flow_router, prefix="/api")
