"""Autonomous optimization route handlers.

Signals go in, ranked opportunities, hypotheses and draft experiments come
out. Generated experiments are always stored as drafts and must be started
explicitly.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import Field

from liftforge.api.dependencies import get_service, success
from liftforge.autonomous.models import OptimizationOpportunity, PageSignals, TestHypothesis
from liftforge.experiments.models import CamelModel
from liftforge.service import ExperimentationService

router = APIRouter(prefix="/autonomous", tags=["autonomous"])


class SignalsRequest(CamelModel):
    """Request model carrying element-level page signals."""

    signals: list[PageSignals] = Field(..., min_length=1)


class BuildRequest(CamelModel):
    """Request model for turning a hypothesis into a draft experiment."""

    hypothesis: TestHypothesis
    traffic_split: Optional[list[float]] = Field(None, description="Allocation, control first")
    owner: Optional[str] = None


class AutoGenerateRequest(CamelModel):
    """Request model for a full autonomous generation run."""

    signals: list[PageSignals] = Field(..., min_length=1)
    max_experiments: int = Field(3, ge=1, le=20)


@router.get("/opportunities")
async def latest_opportunities(
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Opportunities from the most recent analysis."""
    return success(service.opportunities.latest)


@router.post("/opportunities")
async def analyze_opportunities(
    request: SignalsRequest,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Rank the optimization opportunities found in a batch of signals."""
    return success(await service.opportunities.analyze(request.signals))


@router.post("/hypotheses")
async def generate_hypothesis(
    opportunity: OptimizationOpportunity,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Generate a test hypothesis for one opportunity."""
    return success(await service.hypotheses.generate_hypothesis(opportunity))


@router.post("/experiments", status_code=status.HTTP_201_CREATED)
async def build_experiment(
    request: BuildRequest,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Build and store a draft experiment from a hypothesis."""
    experiment = await service.create_from_hypothesis(
        request.hypothesis, request.traffic_split, request.owner
    )
    return success(experiment, status.HTTP_201_CREATED)


@router.post("/auto-generate", status_code=status.HTTP_201_CREATED)
async def auto_generate(
    request: AutoGenerateRequest,
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Run analysis, hypothesis generation and building in one call."""
    report = await service.auto_generate(request.signals, request.max_experiments)
    return success(report, status.HTTP_201_CREATED)


@router.post("/monitor")
async def run_monitoring_cycle(
    service: ExperimentationService = Depends(get_service),
) -> JSONResponse:
    """Run one monitoring cycle immediately."""
    return success(await service.monitoring.run_cycle())
