# backend/careslot/main.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI, Response

from .core.config import settings
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import (
    booking_events as booking_events_v1,
    bookings as bookings_v1,
    time_slots as time_slots_v1,
)

API_TITLE = "Careslot Booking Engine"
API_VERSION = "1.0.0"

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "%s starting (environment=%s, confirmation_window=%smin)",
        API_TITLE,
        settings.environment,
        settings.booking_confirmation_window_minutes,
    )
    yield
    logger.info("%s shutting down...", API_TITLE)


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(time_slots_v1.router, prefix="/time-slots")
    api_v1.include_router(booking_events_v1.router, prefix="/booking-events")
    app.include_router(api_v1)

    @app.get("/health", include_in_schema=False)
    def health_check() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "version": API_VERSION,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    @app.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        return Response(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type(),
        )

    return app


app = create_app()
