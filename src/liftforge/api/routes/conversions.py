"""Bulk conversion route handler."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field

from liftforge.api.dependencies import get_service, success
from liftforge.experiments.conversions import ConversionRequest
from liftforge.experiments.models import CamelModel
from liftforge.service import ExperimentationService

router = APIRouter(prefix="/conversions", tags=["conversions"])

MAX_BULK_CONVERSIONS = 1000


class BulkConversionBody(CamelModel):
    """Request model for recording many conversions at once."""

    experiment_id: Optional[str] = Field(None, description="Default experiment for all items")
    conversions: list[ConversionRequest] = Field(
        ..., min_length=1, max_length=MAX_BULK_CONVERSIONS
    )


@router.post("/bulk")
async def record_bulk_conversions(
    request: BulkConversionBody,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Record conversions and report success per item.

    A failing item never prevents the rest from being recorded.
    """
    report = await service.experiments.record_bulk(request.conversions, request.experiment_id)
    return success(report)
