# autoecole/main.py
"""
FastAPI application for the driving-school scheduling engine.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Response

from . import __version__
from .core.config import settings
from .database import init_db
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes import attendance, bookings, groups, schedules

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

metrics_router = APIRouter()


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
        headers={"Cache-Control": "no-store"},
    )


@metrics_router.get("/health", include_in_schema=False)
def health_check() -> dict:
    return {"status": "ok", "version": __version__}


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables on startup."""
    logger.info(f"Scheduling API starting up (environment: {settings.environment})")
    init_db()
    yield
    logger.info("Scheduling API shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Driving School Scheduling API",
        version=__version__,
        lifespan=app_lifespan,
    )
    for module in (schedules, bookings, attendance, groups):
        app.include_router(module.router, prefix=API_PREFIX)
    app.include_router(metrics_router)
    return app


app = create_app()
