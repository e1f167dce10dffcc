"""In-memory implementation of the experiment store.

This module provides a concurrency-safe, in-memory store suitable for
development, testing, and single-process deployments.
"""

import asyncio
import time
from typing import Optional

from liftforge.experiments.enums import ExperimentStatus
from liftforge.experiments.errors import (
    ExperimentNotFoundError,
    ExperimentNotRunningError,
    LifecycleError,
    ValidationError,
)
from liftforge.experiments.models import (
    ConversionEvent,
    Experiment,
    Participant,
    PerformanceMetrics,
    StatisticalResult,
    utcnow,
)


class InMemoryExperimentStore:
    """In-memory storage for experiments, participants and conversions.

    Uses a single asyncio.Lock so every operation is atomic with respect to
    the others. Returned objects are copies; callers never see shared state.
    """

    def __init__(self) -> None:
        """Initialize the store with empty collections."""
        self._experiments: dict[str, Experiment] = {}
        self._participants: dict[tuple[str, str], Participant] = {}
        self._conversions: dict[str, list[ConversionEvent]] = {}
        self._binary_index: dict[tuple[str, str, str], ConversionEvent] = {}
        self._event_ids: set[str] = set()
        self._converters: set[tuple[str, str, str]] = set()
        self._results: dict[str, StatisticalResult] = {}
        self._leases: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    # Experiments
    async def create_experiment(self, experiment: Experiment) -> Experiment:
        async with self._lock:
            if experiment.id in self._experiments:
                raise ValidationError(
                    f"Experiment '{experiment.id}' already exists", field="id"
                )
            self._experiments[experiment.id] = experiment.model_copy(deep=True)
            self._conversions[experiment.id] = []
            return experiment.model_copy(deep=True)

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        async with self._lock:
            experiment = self._experiments.get(experiment_id)
            return experiment.model_copy(deep=True) if experiment else None

    async def list_experiments(
        self, status: Optional[ExperimentStatus] = None
    ) -> list[Experiment]:
        async with self._lock:
            experiments = sorted(self._experiments.values(), key=lambda e: e.created_at)
            return [
                e.model_copy(deep=True)
                for e in experiments
                if status is None or e.status == status
            ]

    async def update_experiment(
        self, experiment: Experiment, expected_status: ExperimentStatus
    ) -> Experiment:
        async with self._lock:
            stored = self._require(experiment.id)
            if stored.status != expected_status:
                raise LifecycleError(experiment.id, stored.status.value, "update")

            # Counters belong to the engine, never to the caller
            metrics = {v.id: v.metrics for v in stored.variants}
            updated = experiment.model_copy(deep=True)
            for variant in updated.variants:
                if variant.id in metrics:
                    variant.metrics = metrics[variant.id]
            updated.status = stored.status
            updated.created_at = stored.created_at
            updated.updated_at = utcnow()

            self._experiments[experiment.id] = updated
            return updated.model_copy(deep=True)

    async def compare_and_swap_status(
        self,
        experiment_id: str,
        expected: ExperimentStatus,
        new: ExperimentStatus,
        operation: str,
        changes: Optional[dict] = None,
    ) -> Experiment:
        async with self._lock:
            stored = self._require(experiment_id)
            if stored.status != expected:
                raise LifecycleError(experiment_id, stored.status.value, operation)

            update = dict(changes or {})
            update["status"] = new
            update["updated_at"] = utcnow()
            updated = stored.model_copy(update=update, deep=True)

            self._experiments[experiment_id] = updated
            return updated.model_copy(deep=True)

    # Participants
    async def assign_participant(self, participant: Participant) -> tuple[Participant, bool]:
        async with self._lock:
            key = (participant.experiment_id, participant.participant_id)
            existing = self._participants.get(key)
            if existing is not None:
                return existing.model_copy(deep=True), False

            experiment = self._require(participant.experiment_id)
            if experiment.status != ExperimentStatus.RUNNING:
                raise ExperimentNotRunningError(experiment.id, experiment.status.value)

            variant = experiment.get_variant(participant.variant_id)
            if variant is None:
                raise ValidationError(
                    f"Variant '{participant.variant_id}' not found in experiment",
                    field="variantId",
                )

            variant.metrics.visitors += 1
            _refresh_rate(variant.metrics)
            self._participants[key] = participant.model_copy(deep=True)
            return participant.model_copy(deep=True), True

    async def get_participant(
        self, experiment_id: str, participant_id: str
    ) -> Optional[Participant]:
        async with self._lock:
            participant = self._participants.get((experiment_id, participant_id))
            return participant.model_copy(deep=True) if participant else None

    # Conversions
    async def record_conversion(
        self, event: ConversionEvent, allowed_statuses: frozenset[ExperimentStatus]
    ) -> bool:
        async with self._lock:
            experiment = self._require(event.experiment_id)
            if experiment.status not in allowed_statuses:
                raise LifecycleError(
                    experiment.id, experiment.status.value, "record_conversion"
                )

            goal = experiment.get_goal(event.goal_id)
            variant = experiment.get_variant(event.variant_id)
            if goal is None or variant is None:
                raise ValidationError(
                    "Conversion references an unknown goal or variant",
                    field="goalId" if goal is None else "variantId",
                )

            is_primary = goal.id == experiment.primary_goal.id
            converter_key = (event.experiment_id, event.participant_id, event.goal_id)
            metrics = variant.metrics

            if not goal.type.is_additive:
                existing = self._binary_index.get(converter_key)
                if existing is not None:
                    existing.occurrences += 1
                    existing.last_seen_at = event.timestamp
                    return False
                stored_event = event.model_copy(deep=True)
                self._binary_index[converter_key] = stored_event
            else:
                if event.id in self._event_ids:
                    return False
                stored_event = event.model_copy(deep=True)
                value = event.value if event.value is not None else 1.0
                metrics.goal_revenue[goal.id] = metrics.revenue_for(goal.id) + value
                if is_primary:
                    metrics.revenue += value

            if converter_key not in self._converters:
                self._converters.add(converter_key)
                metrics.goal_conversions[goal.id] = metrics.conversions_for(goal.id) + 1
                if is_primary:
                    metrics.conversions += 1
                    _refresh_rate(metrics)

            self._event_ids.add(stored_event.id)
            self._conversions[event.experiment_id].append(stored_event)
            return True

    async def list_conversions(self, experiment_id: str) -> list[ConversionEvent]:
        async with self._lock:
            return [e.model_copy(deep=True) for e in self._conversions.get(experiment_id, [])]

    # Results
    async def save_result(self, result: StatisticalResult) -> None:
        async with self._lock:
            self._results[result.experiment_id] = result.model_copy(deep=True)

    async def get_result(self, experiment_id: str) -> Optional[StatisticalResult]:
        async with self._lock:
            result = self._results.get(experiment_id)
            return result.model_copy(deep=True) if result else None

    # Leases
    async def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        async with self._lock:
            now = time.monotonic()
            current = self._leases.get(name)
            if current is not None and current[0] != holder and current[1] > now:
                return False
            self._leases[name] = (holder, now + ttl_seconds)
            return True

    async def release_lease(self, name: str, holder: str) -> None:
        async with self._lock:
            current = self._leases.get(name)
            if current is not None and current[0] == holder:
                del self._leases[name]

    async def ping(self) -> None:
        async with self._lock:
            return None

    def _require(self, experiment_id: str) -> Experiment:
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment


def _refresh_rate(metrics: PerformanceMetrics) -> None:
    metrics.conversion_rate = (
        metrics.conversions / metrics.visitors if metrics.visitors else 0.0
    )
