"""Conversion recording with attribution checks.

Conversions are only accepted from participants that were actually assigned
to the variant they claim. Binary goals count once per participant; revenue
goals accumulate every recorded value.
"""

from typing import Any, Optional

from pydantic import Field

from liftforge.experiments.errors import (
    AttributionMismatchError,
    ExperimentError,
    ExperimentNotFoundError,
    ValidationError,
)
from liftforge.experiments.lifecycle import CONVERSION_STATUSES
from liftforge.experiments.models import CamelModel, ConversionEvent
from liftforge.experiments.storage.repository import ExperimentStore
from liftforge.observability.logging import get_logger
from liftforge.observability.metrics import get_metrics_collector

logger = get_logger(__name__)


class ConversionRequest(CamelModel):
    """A single conversion to record."""

    experiment_id: Optional[str] = None
    variant_id: str = Field(..., min_length=1)
    participant_id: str = Field(..., min_length=1)
    goal_id: str = Field(..., min_length=1)
    value: Optional[float] = None
    properties: dict[str, Any] = Field(default_factory=dict)


class ConversionOutcome(CamelModel):
    """Result of recording one conversion.

    Attributes:
        event_id: ID of the stored event
        counted: Whether any counter changed (False for repeated binary conversions)
    """

    event_id: str
    counted: bool


class BulkItemResult(CamelModel):
    """Per-item status of a bulk conversion request."""

    index: int
    experiment_id: Optional[str] = None
    success: bool
    counted: bool = False
    event_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


class BulkConversionReport(CamelModel):
    """Outcome of a bulk conversion request."""

    results: list[BulkItemResult]
    success_count: int
    failure_count: int
    total_count: int


class ConversionRecorder:
    """Validates and records conversions against the experiment store."""

    def __init__(self, store: ExperimentStore) -> None:
        """Initialize the recorder.

        Args:
            store: Store holding experiments, participants and conversions
        """
        self.store = store

    async def record_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        participant_id: str,
        goal_id: str,
        value: Optional[float] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> ConversionOutcome:
        """Record a conversion for an assigned participant.

        Args:
            experiment_id: Experiment the conversion belongs to
            variant_id: Variant the caller attributes the conversion to
            participant_id: Participant that converted
            goal_id: Goal that was reached
            value: Monetary value for revenue goals, defaults to 1
            properties: Free-form event properties

        Returns:
            ConversionOutcome with the stored event ID and whether it counted

        Raises:
            ExperimentNotFoundError: If the experiment does not exist
            ValidationError: If the goal is unknown or the value is negative
            AttributionMismatchError: If the participant is not assigned to variant_id
            LifecycleError: If the experiment is not running or paused
        """
        experiment = await self.store.get_experiment(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)

        goal = experiment.get_goal(goal_id)
        if goal is None:
            raise ValidationError(
                f"Goal '{goal_id}' is not defined for experiment '{experiment_id}'",
                field="goalId",
            )
        if value is not None and value < 0:
            raise ValidationError("Conversion value must not be negative", field="value")

        participant = await self.store.get_participant(experiment_id, participant_id)
        if participant is None or participant.variant_id != variant_id:
            raise AttributionMismatchError(
                experiment_id=experiment_id,
                participant_id=participant_id,
                claimed_variant_id=variant_id,
                assigned_variant_id=participant.variant_id if participant else None,
            )

        event = ConversionEvent(
            experiment_id=experiment_id,
            variant_id=variant_id,
            participant_id=participant_id,
            goal_id=goal_id,
            value=value,
            properties=properties or {},
        )
        counted = await self.store.record_conversion(event, CONVERSION_STATUSES)

        get_metrics_collector().record_conversion(goal.type.value, counted)
        logger.info(
            "conversion_recorded",
            experiment_id=experiment_id,
            variant_id=variant_id,
            goal_id=goal_id,
            counted=counted,
        )
        return ConversionOutcome(event_id=event.id, counted=counted)

    async def record_bulk(
        self, requests: list[ConversionRequest], default_experiment_id: Optional[str] = None
    ) -> BulkConversionReport:
        """Record many conversions, reporting success per item.

        A failing item never prevents the others from being recorded.

        Args:
            requests: Conversions to record
            default_experiment_id: Experiment used for items that omit one

        Returns:
            BulkConversionReport with one result per request
        """
        results: list[BulkItemResult] = []

        for index, request in enumerate(requests):
            experiment_id = request.experiment_id or default_experiment_id
            if not experiment_id:
                results.append(
                    BulkItemResult(
                        index=index,
                        success=False,
                        error="experimentId is required",
                        code="validation_error",
                    )
                )
                continue

            try:
                outcome = await self.record_conversion(
                    experiment_id=experiment_id,
                    variant_id=request.variant_id,
                    participant_id=request.participant_id,
                    goal_id=request.goal_id,
                    value=request.value,
                    properties=request.properties,
                )
            except ExperimentError as e:
                logger.warning(
                    "bulk_conversion_failed", index=index, experiment_id=experiment_id, code=e.code
                )
                results.append(
                    BulkItemResult(
                        index=index,
                        experiment_id=experiment_id,
                        success=False,
                        error=e.message,
                        code=e.code,
                    )
                )
                continue

            results.append(
                BulkItemResult(
                    index=index,
                    experiment_id=experiment_id,
                    success=True,
                    counted=outcome.counted,
                    event_id=outcome.event_id,
                )
            )

        success_count = sum(1 for r in results if r.success)
        return BulkConversionReport(
            results=results,
            success_count=success_count,
            failure_count=len(results) - success_count,
            total_count=len(results),
        )
