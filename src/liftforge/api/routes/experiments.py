"""Experiment API route handlers.

This module provides route handlers for experiment definitions, lifecycle
transitions, participant assignment, conversion tracking and results.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import Field

from liftforge.api.dependencies import get_service, success
from liftforge.experiments.enums import ExperimentStatus
from liftforge.experiments.manager import (
    ExperimentDefinition,
    ExperimentPatch,
    ParticipantRequest,
)
from liftforge.experiments.models import CamelModel
from liftforge.service import ExperimentationService

router = APIRouter(prefix="/experiments", tags=["experiments"])


# Request Models


class StopRequest(CamelModel):
    """Request model for completing an experiment."""

    winner_id: Optional[str] = Field(None, description="Variant declared the winner")


class ConversionBody(CamelModel):
    """Request model for recording a conversion."""

    variant_id: str = Field(..., min_length=1, description="Variant the participant saw")
    participant_id: str = Field(..., min_length=1, description="Assigned participant ID")
    goal_id: str = Field(..., min_length=1, description="Goal that converted")
    value: Optional[float] = Field(None, description="Revenue or engagement value")
    properties: dict[str, Any] = Field(default_factory=dict)


class SampleSizeRequest(CamelModel):
    """Request model for a sample size estimate. Rates and effects are percents."""

    baseline_conversion_rate: float = Field(..., description="Baseline conversion rate (%)")
    minimum_detectable_effect: float = Field(..., description="Relative lift to detect (%)")
    confidence_level: float = Field(95.0, description="Confidence level (%)")
    statistical_power: float = Field(80.0, description="Statistical power (%)")
    variant_count: int = Field(2, description="Variants including control")
    daily_traffic: Optional[int] = Field(None, description="Visitors per day")


# Definition Endpoints


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_experiment(
    definition: ExperimentDefinition,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Create a draft experiment.

    Returns:
        201 with the stored experiment, 400 with ``details.violations`` when invalid
    """
    experiment = await service.experiments.create_experiment(definition)
    return success(experiment, status.HTTP_201_CREATED)


@router.get("")
async def list_experiments(
    status_filter: Optional[ExperimentStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """List experiments, optionally filtered by status."""
    experiments, total = await service.experiments.list_experiments(status_filter, limit, offset)
    return success(
        {"experiments": experiments, "total": total, "limit": limit, "offset": offset}
    )


@router.post("/validate")
async def validate_experiment(
    definition: ExperimentDefinition,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Validate a definition without storing it."""
    violations = service.experiments.validate_definition(definition)
    return success(
        {
            "valid": not violations,
            "errors": [v.message for v in violations],
            "violations": [v.model_dump() for v in violations],
        }
    )


@router.post("/sample-size")
async def calculate_sample_size(
    request: SampleSizeRequest,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Estimate per-variant and total sample size and the expected duration."""
    estimate = service.analyzer.sample_size(
        baseline_rate=request.baseline_conversion_rate,
        minimum_detectable_effect=request.minimum_detectable_effect,
        confidence_level=request.confidence_level,
        statistical_power=request.statistical_power,
        variant_count=request.variant_count,
        daily_traffic=request.daily_traffic,
    )
    return success(estimate)


@router.get("/{experiment_id}")
async def get_experiment(
    experiment_id: str,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Get an experiment by ID."""
    return success(await service.experiments.get_experiment(experiment_id))


@router.patch("/{experiment_id}")
async def update_experiment(
    experiment_id: str,
    patch: ExperimentPatch,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Partially update a draft experiment."""
    return success(await service.experiments.update_experiment(experiment_id, patch))


# Lifecycle Endpoints


@router.post("/{experiment_id}/start")
async def start_experiment(
    experiment_id: str,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Start a draft experiment or resume a paused one.

    Returns:
        200 with the running experiment, 400 on lifecycle or validation
        errors, 409 when a running experiment touches the same element
    """
    return success(await service.experiments.start_experiment(experiment_id))


@router.post("/{experiment_id}/pause")
async def pause_experiment(
    experiment_id: str,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Pause a running experiment."""
    return success(await service.experiments.pause_experiment(experiment_id))


@router.post("/{experiment_id}/stop")
async def stop_experiment(
    experiment_id: str,
    request: Optional[StopRequest] = Body(None),
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Complete an experiment, optionally declaring a winner."""
    winner_id = request.winner_id if request else None
    return success(await service.experiments.complete_experiment(experiment_id, winner_id))


# Traffic Endpoints


@router.post("/{experiment_id}/participants")
async def assign_participant(
    experiment_id: str,
    request: ParticipantRequest,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Return the participant's variant, assigning one on first contact."""
    return success(await service.experiments.assign_participant(experiment_id, request))


@router.get("/{experiment_id}/participants/{participant_id}")
async def get_participant(
    experiment_id: str,
    participant_id: str,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Look up an existing assignment."""
    return success(await service.experiments.get_assignment(experiment_id, participant_id))


@router.post("/{experiment_id}/conversions")
async def record_conversion(
    experiment_id: str,
    request: ConversionBody,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Record a conversion for an assigned participant."""
    outcome = await service.experiments.record_conversion(
        experiment_id,
        variant_id=request.variant_id,
        participant_id=request.participant_id,
        goal_id=request.goal_id,
        value=request.value,
        properties=request.properties,
    )
    return success(outcome)


# Results Endpoints


@router.get("/{experiment_id}/results")
async def get_results(
    experiment_id: str,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Current statistical result of an experiment."""
    return success(await service.experiments.get_results(experiment_id))
