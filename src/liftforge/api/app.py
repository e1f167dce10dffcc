"""FastAPI application factory for the LiftForge API.

This module provides the application factory pattern for creating
configured FastAPI instances with middleware, routes and error handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from liftforge import __version__
from liftforge.api.middleware.correlation import CorrelationIdMiddleware
from liftforge.api.middleware.error_handler import setup_error_handlers
from liftforge.api.routes.autonomous import router as autonomous_router
from liftforge.api.routes.conversions import router as conversions_router
from liftforge.api.routes.events import router as events_router
from liftforge.api.routes.experiments import router as experiments_router
from liftforge.api.routes.health import router as health_router
from liftforge.config import LiftForgeSettings, load_settings_from_env
from liftforge.observability.logging import get_logger, setup_logging
from liftforge.observability.metrics import get_metrics_collector
from liftforge.service import ExperimentationService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start and stop the service's background work.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    service: ExperimentationService = app.state.service
    logger.info("application_startup")
    await service.start()
    try:
        yield
    finally:
        await service.stop()
        logger.info("application_shutdown")


def create_app(
    settings: Optional[LiftForgeSettings] = None,
    service: Optional[ExperimentationService] = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Service configuration, read from the environment when omitted
        service: Prebuilt service, built from ``settings`` when omitted

    Returns:
        Configured FastAPI application instance

    Examples:
        >>> app = create_app(LiftForgeSettings(monitoring=MonitoringSettings(enabled=False)))
        >>> # uvicorn liftforge.api.app:app --reload
    """
    settings = settings or (service.settings if service else load_settings_from_env())
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    app = FastAPI(
        title="LiftForge Experimentation API",
        version=__version__,
        description="A/B and multivariate experimentation with autonomous test generation",
        lifespan=lifespan,
    )
    app.state.service = service or ExperimentationService(settings)

    # TODO: Restrict allowed origins once deployment hosts are known
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)  # type: ignore[arg-type]

    setup_error_handlers(app)

    app.include_router(experiments_router)
    app.include_router(conversions_router)
    app.include_router(autonomous_router)
    app.include_router(events_router)
    app.include_router(health_router)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(
            content=get_metrics_collector().generate_metrics(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app


# Module-level app instance for uvicorn
app = create_app()
