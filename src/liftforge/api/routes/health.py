"""Health check endpoint for monitoring and load balancers.

This module reports store connectivity, monitoring scheduler status and
experiment counts.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from liftforge import __version__
from liftforge.api.dependencies import get_service
from liftforge.api.middleware.error_handler import error_response
from liftforge.experiments.enums import ExperimentStatus
from liftforge.experiments.errors import ExperimentError
from liftforge.observability.logging import get_logger
from liftforge.service import ExperimentationService

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


class HealthCheckComponent(BaseModel):
    """Health status of a single component.

    Attributes:
        status: Component status (healthy, unhealthy, degraded)
        message: Optional status message or error details
    """

    status: str
    message: str | None = None


class HealthCheckResponse(BaseModel):
    """Overall health check response."""

    status: str
    components: dict[str, HealthCheckComponent]
    experiments: dict[str, int] = {}
    version: str = __version__


async def check_store_health(service: ExperimentationService) -> HealthCheckComponent:
    """Check experiment store connectivity."""
    try:
        await service.store.ping()
    except ExperimentError as e:
        logger.error("store_health_check_failed", error=e.message)
        return HealthCheckComponent(status="unhealthy", message=e.message)
    return HealthCheckComponent(status="healthy", message="Store reachable")


def check_monitoring_health(service: ExperimentationService) -> HealthCheckComponent:
    """Check the monitoring scheduler.

    A disabled monitor is healthy; an enabled one that is not running is degraded.
    """
    if not service.settings.monitoring.enabled:
        return HealthCheckComponent(status="healthy", message="Monitoring disabled")
    if service.monitoring.running:
        return HealthCheckComponent(status="healthy", message="Monitoring scheduler running")
    return HealthCheckComponent(status="degraded", message="Monitoring scheduler not running")


@router.get("/health")
async def health_check(service: ExperimentationService = Depends(get_service)) -> JSONResponse:
    """Comprehensive health check endpoint.

    Returns:
        200 OK when the store is reachable, 503 Service Unavailable otherwise
    """
    components = {
        "store": await check_store_health(service),
        "monitoring": check_monitoring_health(service),
    }

    counts: dict[str, int] = {}
    if components["store"].status == "healthy":
        try:
            experiments = await service.store.list_experiments()
        except ExperimentError as e:
            logger.error("health_experiment_count_failed", error=e.message)
            components["store"] = HealthCheckComponent(status="unhealthy", message=e.message)
        else:
            counts = {s.value: 0 for s in ExperimentStatus}
            for experiment in experiments:
                counts[experiment.status.value] += 1

    statuses = [c.status for c in components.values()]
    if "unhealthy" in statuses:
        overall_status = "unhealthy"
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif "degraded" in statuses:
        overall_status = "degraded"
        status_code = status.HTTP_200_OK
    else:
        overall_status = "healthy"
        status_code = status.HTTP_200_OK

    response = HealthCheckResponse(
        status=overall_status, components=components, experiments=counts
    )
    logger.info(
        "health_check_completed",
        overall_status=overall_status,
        store=components["store"].status,
        monitoring=components["monitoring"].status,
    )
    if status_code != status.HTTP_200_OK:
        return error_response(
            status_code,
            "Store unavailable",
            "dependency_unavailable",
            details=response.model_dump(),
            headers={"Retry-After": "1"},
        )
    return JSONResponse(
        status_code=status_code, content={"success": True, "data": response.model_dump()}
    )
