"""FastAPI application: walrus metrics API v2."""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.v2 import metrics
from src.api.v2.errors import metrics_unavailable_handler
from src.core.config import Settings
from src.core.config import settings as default_settings
from src.core.errors import MetricsUnavailableError
from src.core.logging import configure_logging
from src.core.services import Services, build_services

logger = structlog.get_logger()

VERSION = "1.0.0"


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    settings = services.settings if services else (settings or default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.log_json)
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
        svc: Services = app.state.services
        logger.info("startup", version=VERSION, port=settings.port)
        svc.cache.start_monitoring()
        await svc.scheduler.start()
        yield
        svc.scheduler.stop()
        svc.cache.stop_monitoring()
        logger.info("shutdown")

    app = FastAPI(
        title="Walrus Metrics API",
        version=VERSION,
        description="Daily-scraped Walrus storage network metrics",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(metrics.router, prefix="/api/v2")
    app.add_exception_handler(MetricsUnavailableError, metrics_unavailable_handler)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "version": VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/")
    async def root(svc: Services = Depends(metrics.get_services)):
        scheduler = svc.scheduler.get_status()
        return {
            "service": "Walrus Metrics API",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "metrics": "/api/v2/metrics",
                "refresh": "/api/v2/refresh",
                "last_update": "/api/v2/last-update",
                "status": "/api/v2/status",
            },
            "scheduler": {
                "next_run_at": scheduler["next_run_at"],
                "last_run_at": scheduler["last_run_at"],
            },
        }

    return app


app = create_app()
