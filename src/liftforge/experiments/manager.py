"""Experiment manager orchestrating definitions, lifecycle and traffic.

This module provides the main interface for creating, editing, starting,
pausing and completing experiments, assigning participants, recording
conversions and reading statistical results.
"""

import asyncio
from typing import Any, Optional

from cachetools import TTLCache
from pydantic import Field

from liftforge.experiments.allocation import TrafficAllocator
from liftforge.experiments.analysis import StatisticalAnalyzer
from liftforge.experiments.conflicts import DeploymentConflictDetector
from liftforge.experiments.conversions import (
    BulkConversionReport,
    ConversionOutcome,
    ConversionRecorder,
    ConversionRequest,
)
from liftforge.experiments.enums import (
    DeviceType,
    EventType,
    ExperimentStatus,
    ExperimentType,
)
from liftforge.experiments.errors import (
    DeploymentConflictError,
    ExperimentNotFoundError,
    ExperimentNotRunningError,
    LifecycleError,
    NotFoundError,
    ValidationError,
)
from liftforge.experiments.events import EventBus
from liftforge.experiments.lifecycle import (
    ASSIGNMENT_STATUSES,
    COMPLETE,
    EDITABLE_STATUSES,
    PAUSE,
    RESUME,
    START,
    Transition,
    check_transition,
)
from liftforge.experiments.models import (
    CamelModel,
    Experiment,
    ExperimentMetadata,
    Goal,
    Participant,
    PerformanceMetrics,
    StatisticalResult,
    StatisticalSettings,
    TargetingRules,
    Variant,
    VariantChange,
    utcnow,
)
from liftforge.experiments.storage.repository import ExperimentStore
from liftforge.experiments.validation import ExperimentValidator, Violation
from liftforge.observability.logging import get_logger
from liftforge.observability.metrics import get_metrics_collector

logger = get_logger(__name__)


class ExperimentDefinition(CamelModel):
    """Client-supplied definition of a new experiment."""

    id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    type: ExperimentType = ExperimentType.AB_TEST
    variants: list[Variant] = Field(default_factory=list)
    primary_goal: Goal
    secondary_goals: list[Goal] = Field(default_factory=list)
    statistical_settings: StatisticalSettings = Field(default_factory=StatisticalSettings)
    targeting_rules: TargetingRules = Field(default_factory=TargetingRules)
    metadata: ExperimentMetadata = Field(default_factory=ExperimentMetadata)

    def to_experiment(self) -> Experiment:
        """Build a draft experiment with zeroed counters."""
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "variants": _reset_metrics(self.variants),
            "primary_goal": self.primary_goal,
            "secondary_goals": self.secondary_goals,
            "statistical_settings": self.statistical_settings,
            "targeting_rules": self.targeting_rules,
            "metadata": _client_metadata(self.metadata),
        }
        if self.id:
            data["id"] = self.id
        return Experiment(**data)


class ExperimentPatch(CamelModel):
    """Partial update of a draft experiment; unset fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[ExperimentType] = None
    variants: Optional[list[Variant]] = None
    primary_goal: Optional[Goal] = None
    secondary_goals: Optional[list[Goal]] = None
    statistical_settings: Optional[StatisticalSettings] = None
    targeting_rules: Optional[TargetingRules] = None
    metadata: Optional[ExperimentMetadata] = None


class ParticipantRequest(CamelModel):
    """Visitor details sent when requesting a variant."""

    session_id: str = Field(..., min_length=1, max_length=255)
    device_type: DeviceType
    user_id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    geo_location: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def identity(self) -> str:
        """Stable identity used for bucketing: user ID when known, else session ID."""
        return self.user_id or self.session_id


class Assignment(CamelModel):
    """Variant served to a participant."""

    experiment_id: str
    participant_id: str
    variant_id: str
    variant_name: str
    changes: list[VariantChange] = Field(default_factory=list)
    is_new: bool


def _reset_metrics(variants: list[Variant]) -> list[Variant]:
    return [v.model_copy(update={"metrics": PerformanceMetrics()}, deep=True) for v in variants]


# Outcome fields are written only when an experiment completes
def _client_metadata(metadata: ExperimentMetadata) -> ExperimentMetadata:
    return metadata.model_copy(update={"winner_id": None, "winner_name": None}, deep=True)


class ExperimentManager:
    """Manages experiments from definition through completion.

    The manager is the only writer of experiment status. Start and resume are
    serialized in-process so that two colliding experiments cannot pass the
    conflict check concurrently; the store's compare-and-swap protects the
    status across processes.
    """

    def __init__(
        self,
        store: ExperimentStore,
        events: EventBus,
        analyzer: Optional[StatisticalAnalyzer] = None,
        validator: Optional[ExperimentValidator] = None,
        allocator: Optional[TrafficAllocator] = None,
        conflict_detector: Optional[DeploymentConflictDetector] = None,
        results_cache_ttl_seconds: float = 300.0,
        results_cache_size: int = 1024,
    ) -> None:
        """Initialize the experiment manager.

        Args:
            store: Experiment store (usually wrapped for resilience)
            events: Bus receiving lifecycle events
            analyzer: Statistical analyzer for results
            validator: Definition validator
            allocator: Traffic allocator for new participants
            conflict_detector: Detector consulted before start and resume
            results_cache_ttl_seconds: Lifetime of cached results
            results_cache_size: Maximum number of cached results
        """
        self.store = store
        self.events = events
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.validator = validator or ExperimentValidator()
        self.allocator = allocator or TrafficAllocator()
        self.conflict_detector = conflict_detector or DeploymentConflictDetector()
        self.recorder = ConversionRecorder(store)
        self._results_cache: Optional[TTLCache] = (
            TTLCache(maxsize=results_cache_size, ttl=results_cache_ttl_seconds)
            if results_cache_ttl_seconds > 0
            else None
        )
        self._deployment_lock = asyncio.Lock()

    # Definitions
    def validate_definition(self, definition: ExperimentDefinition) -> list[Violation]:
        """Validate a definition without storing it."""
        return self.validator.validate(definition.to_experiment())

    async def create_experiment(self, definition: ExperimentDefinition) -> Experiment:
        """Validate and store a new draft experiment.

        Args:
            definition: Client-supplied experiment definition

        Returns:
            The stored experiment in draft status

        Raises:
            ValidationError: If the definition violates any rule
        """
        return await self.store_experiment(definition.to_experiment())

    async def store_experiment(self, experiment: Experiment) -> Experiment:
        """Validate and store an already built experiment as a draft.

        Raises:
            ValidationError: If the experiment violates any rule
        """
        draft = experiment.model_copy(
            update={
                "status": ExperimentStatus.DRAFT,
                "variants": _reset_metrics(experiment.variants),
            },
            deep=True,
        )
        self._raise_on_violations(draft, "Experiment definition is invalid")

        created = await self.store.create_experiment(draft)
        logger.info("experiment_created", experiment_id=created.id, name=created.name)
        await self.events.emit(
            EventType.EXPERIMENT_CREATED,
            created.id,
            name=created.name,
            generated_by=created.metadata.generated_by,
        )
        return created

    async def get_experiment(self, experiment_id: str) -> Experiment:
        """Get an experiment by ID.

        Raises:
            ExperimentNotFoundError: If experiment does not exist
        """
        experiment = await self.store.get_experiment(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment

    async def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Experiment], int]:
        """List experiments oldest first.

        Returns:
            Tuple of (page of experiments, total matching count)
        """
        experiments = await self.store.list_experiments(status)
        return experiments[offset : offset + limit], len(experiments)

    async def update_experiment(self, experiment_id: str, patch: ExperimentPatch) -> Experiment:
        """Apply a partial update to a draft experiment.

        Raises:
            ExperimentNotFoundError: If experiment does not exist
            LifecycleError: If the experiment is no longer a draft
            ValidationError: If the patched definition violates any rule
        """
        experiment = await self.get_experiment(experiment_id)
        if experiment.status not in EDITABLE_STATUSES:
            raise LifecycleError(experiment_id, experiment.status.value, "update")

        changes = {field: getattr(patch, field) for field in patch.model_fields_set}
        if "variants" in changes and changes["variants"] is not None:
            changes["variants"] = _reset_metrics(changes["variants"])
        if changes.get("metadata") is not None:
            changes["metadata"] = _client_metadata(changes["metadata"])
        changes = {k: v for k, v in changes.items() if v is not None}

        patched = experiment.model_copy(update=changes, deep=True)
        self._raise_on_violations(patched, "Updated experiment definition is invalid")

        updated = await self.store.update_experiment(
            patched, expected_status=ExperimentStatus.DRAFT
        )
        self._invalidate_results(experiment_id)

        logger.info("experiment_updated", experiment_id=experiment_id, fields=sorted(changes))
        await self.events.emit(EventType.EXPERIMENT_UPDATED, experiment_id, fields=sorted(changes))
        return updated

    # Lifecycle
    async def start_experiment(self, experiment_id: str) -> Experiment:
        """Start a draft experiment or resume a paused one.

        Raises:
            ExperimentNotFoundError: If experiment does not exist
            LifecycleError: If the experiment is running or completed
            ValidationError: If a draft fails validation
            DeploymentConflictError: If a running experiment touches the same element
        """
        experiment = await self.get_experiment(experiment_id)
        if experiment.status == ExperimentStatus.PAUSED:
            return await self.resume_experiment(experiment_id)
        return await self._deploy(experiment_id, START)

    async def resume_experiment(self, experiment_id: str) -> Experiment:
        """Resume a paused experiment after re-checking for conflicts."""
        return await self._deploy(experiment_id, RESUME)

    async def pause_experiment(self, experiment_id: str) -> Experiment:
        """Pause a running experiment; existing participants keep their variant."""
        experiment = await self.get_experiment(experiment_id)
        check_transition(PAUSE, experiment_id, experiment.status)
        return await self._transition(experiment, PAUSE, {"paused_at": utcnow()})

    async def complete_experiment(
        self, experiment_id: str, winner_id: Optional[str] = None
    ) -> Experiment:
        """Complete an experiment, freezing its metrics and storing a final result.

        Args:
            experiment_id: ID of the experiment to complete
            winner_id: Optional ID of the variant declared the winner

        Returns:
            The completed experiment

        Raises:
            ExperimentNotFoundError: If experiment does not exist
            LifecycleError: If the experiment is not running or paused
            ValidationError: If winner_id does not name a variant
        """
        experiment = await self.get_experiment(experiment_id)
        check_transition(COMPLETE, experiment_id, experiment.status)

        metadata = experiment.metadata
        if winner_id is not None:
            winner = experiment.get_variant(winner_id)
            if winner is None:
                raise ValidationError(
                    f"Winner '{winner_id}' is not a variant of experiment '{experiment_id}'",
                    field="winnerId",
                )
            metadata = metadata.model_copy(
                update={"winner_id": winner.id, "winner_name": winner.name}
            )

        completed = await self._transition(
            experiment, COMPLETE, {"completed_at": utcnow(), "metadata": metadata}
        )

        result = self.analyzer.analyze(completed, final=True)
        await self.store.save_result(result)
        logger.info(
            "experiment_final_result_stored",
            experiment_id=experiment_id,
            recommendation=result.recommendation.action.value,
            winner=result.winner.variant_id if result.winner else None,
        )
        return completed

    async def _deploy(self, experiment_id: str, transition: Transition) -> Experiment:
        async with self._deployment_lock:
            experiment = await self.get_experiment(experiment_id)
            check_transition(transition, experiment_id, experiment.status)

            if transition is START:
                self._raise_on_violations(experiment, "Experiment cannot start")

            running = await self.store.list_experiments(ExperimentStatus.RUNNING)
            conflicts = self.conflict_detector.find_conflicts(experiment, running)
            if conflicts:
                conflicting_ids = [c.experiment_id for c in conflicts]
                logger.warning(
                    "deployment_conflict",
                    experiment_id=experiment_id,
                    conflicting_ids=conflicting_ids,
                )
                raise DeploymentConflictError(experiment_id, conflicting_ids)

            changes: dict[str, Any] = {"paused_at": None}
            if experiment.started_at is None:
                changes["started_at"] = utcnow()
            return await self._transition(experiment, transition, changes)

    async def _transition(
        self, experiment: Experiment, transition: Transition, changes: dict[str, Any]
    ) -> Experiment:
        updated = await self.store.compare_and_swap_status(
            experiment.id, experiment.status, transition.target, transition.name, changes
        )
        self._invalidate_results(experiment.id)
        get_metrics_collector().record_transition(transition.name)
        logger.info(
            "experiment_transitioned",
            experiment_id=experiment.id,
            transition=transition.name,
            from_status=experiment.status.value,
            to_status=updated.status.value,
        )
        await self.events.emit(
            transition.event,
            experiment.id,
            from_status=experiment.status.value,
            to_status=updated.status.value,
            winner_id=updated.metadata.winner_id,
        )
        return updated

    # Traffic
    async def assign_participant(
        self, experiment_id: str, request: ParticipantRequest
    ) -> Assignment:
        """Return the participant's variant, assigning one on first contact.

        Raises:
            ExperimentNotFoundError: If experiment does not exist
            ExperimentNotRunningError: If the experiment cannot serve this participant
        """
        experiment = await self.get_experiment(experiment_id)
        identity = request.identity

        existing = await self.store.get_participant(experiment_id, identity)
        if existing is not None:
            if experiment.status not in ASSIGNMENT_STATUSES:
                raise ExperimentNotRunningError(experiment_id, experiment.status.value)
            get_metrics_collector().record_assignment(created=False)
            return self._to_assignment(experiment, existing, is_new=False)

        if experiment.status != ExperimentStatus.RUNNING:
            raise ExperimentNotRunningError(experiment_id, experiment.status.value)

        participant = Participant(
            experiment_id=experiment_id,
            participant_id=identity,
            variant_id=self.allocator.allocate(experiment, identity),
            session_id=request.session_id,
            user_id=request.user_id,
            device_type=request.device_type,
            user_agent=request.user_agent,
            ip_address=request.ip_address,
            geo_location=request.geo_location,
            metadata=request.metadata,
        )
        stored, created = await self.store.assign_participant(participant)
        if created:
            self._invalidate_results(experiment_id)
            logger.info(
                "participant_assigned",
                experiment_id=experiment_id,
                variant_id=stored.variant_id,
            )
        get_metrics_collector().record_assignment(created=created)
        return self._to_assignment(experiment, stored, is_new=created)

    async def get_assignment(self, experiment_id: str, participant_id: str) -> Assignment:
        """Look up an existing assignment without creating one.

        Raises:
            ExperimentNotFoundError: If experiment does not exist
            NotFoundError: If the participant was never assigned
        """
        experiment = await self.get_experiment(experiment_id)
        participant = await self.store.get_participant(experiment_id, participant_id)
        if participant is None:
            raise NotFoundError("participant", participant_id)
        return self._to_assignment(experiment, participant, is_new=False)

    def _to_assignment(
        self, experiment: Experiment, participant: Participant, is_new: bool
    ) -> Assignment:
        variant = experiment.get_variant(participant.variant_id)
        return Assignment(
            experiment_id=experiment.id,
            participant_id=participant.participant_id,
            variant_id=participant.variant_id,
            variant_name=variant.name if variant else participant.variant_id,
            changes=variant.changes if variant else [],
            is_new=is_new,
        )

    # Conversions
    async def record_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        participant_id: str,
        goal_id: str,
        value: Optional[float] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> ConversionOutcome:
        """Record a conversion and drop the experiment's cached results."""
        outcome = await self.recorder.record_conversion(
            experiment_id, variant_id, participant_id, goal_id, value, properties
        )
        if outcome.counted:
            self._invalidate_results(experiment_id)
        return outcome

    async def record_bulk(
        self, requests: list[ConversionRequest], default_experiment_id: Optional[str] = None
    ) -> BulkConversionReport:
        """Record many conversions with a per-item report."""
        report = await self.recorder.record_bulk(requests, default_experiment_id)
        for item in report.results:
            if item.counted and item.experiment_id:
                self._invalidate_results(item.experiment_id)
        return report

    # Results
    async def get_results(self, experiment_id: str) -> StatisticalResult:
        """Current statistical result; the stored final result once completed.

        Raises:
            ExperimentNotFoundError: If experiment does not exist
        """
        experiment = await self.get_experiment(experiment_id)

        if experiment.status == ExperimentStatus.COMPLETED:
            stored = await self.store.get_result(experiment_id)
            if stored is not None:
                return stored
            return self.analyzer.analyze(experiment, final=True)

        if self._results_cache is not None and experiment_id in self._results_cache:
            return self._results_cache[experiment_id]

        result = self.analyzer.analyze(experiment)
        if self._results_cache is not None:
            self._results_cache[experiment_id] = result
        return result

    def _invalidate_results(self, experiment_id: str) -> None:
        if self._results_cache is not None:
            self._results_cache.pop(experiment_id, None)

    def _raise_on_violations(self, experiment: Experiment, message: str) -> None:
        violations = self.validator.validate(experiment)
        if violations:
            raise ValidationError(message, violations=[v.model_dump() for v in violations])
