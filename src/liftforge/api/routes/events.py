"""Recent engine events."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from liftforge.api.dependencies import get_service, success
from liftforge.experiments.enums import EventType
from liftforge.service import ExperimentationService

router = APIRouter(tags=["events"])


@router.get("/events")
async def recent_events(
    limit: int = Query(100, ge=1, le=1000),
    event_type: Optional[EventType] = Query(None, alias="type"),
    experiment_id: Optional[str] = Query(None, alias="experimentId"),
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Most recent events first, optionally filtered by type or experiment."""
    events = service.event_log.recent(
        limit=limit, event_type=event_type, experiment_id=experiment_id
    )
    return success(events)
