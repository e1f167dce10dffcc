"""Tests for the in-memory store and the resilient store wrapper."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from liftforge.experiments.enums import DeviceType, ExperimentStatus
from liftforge.experiments.errors import (
    DependencyUnavailableError,
    ExperimentNotFoundError,
    ExperimentNotRunningError,
    LifecycleError,
    StoreTimeoutError,
    ValidationError,
)
from liftforge.experiments.lifecycle import CONVERSION_STATUSES
from liftforge.experiments.models import ConversionEvent, Experiment, Participant
from liftforge.experiments.storage.memory import InMemoryExperimentStore
from liftforge.experiments.storage.resilient import ResilientExperimentStore


def participant(experiment_id: str, participant_id: str, variant_id: str) -> Participant:
    return Participant(
        experiment_id=experiment_id,
        participant_id=participant_id,
        variant_id=variant_id,
        session_id=participant_id,
        device_type=DeviceType.DESKTOP,
    )


async def running_experiment(store: InMemoryExperimentStore, make_definition) -> Experiment:
    experiment = await store.create_experiment(make_definition().to_experiment())
    return await store.compare_and_swap_status(
        experiment.id, ExperimentStatus.DRAFT, ExperimentStatus.RUNNING, "start"
    )


class TestInMemoryExperimentStore:
    """Tests for InMemoryExperimentStore."""

    async def test_create_and_get_returns_copies(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Mutating a returned experiment should not change stored state."""
        created = await store.create_experiment(make_definition().to_experiment())
        created.name = "mutated"

        fetched = await store.get_experiment(created.id)

        assert fetched is not None
        assert fetched.name == "Pricing CTA copy"

    async def test_duplicate_id_rejected(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Creating the same experiment twice should fail."""
        experiment = make_definition().to_experiment()
        await store.create_experiment(experiment)

        with pytest.raises(ValidationError):
            await store.create_experiment(experiment)

    async def test_list_filters_by_status(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Listing with a status should only return matching experiments."""
        await store.create_experiment(make_definition(name="draft").to_experiment())
        running = await running_experiment(store, make_definition)

        listed = await store.list_experiments(ExperimentStatus.RUNNING)

        assert [e.id for e in listed] == [running.id]
        assert len(await store.list_experiments()) == 2

    async def test_compare_and_swap_rejects_stale_status(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """A transition from a status the experiment is no longer in should fail."""
        experiment = await running_experiment(store, make_definition)

        with pytest.raises(LifecycleError):
            await store.compare_and_swap_status(
                experiment.id, ExperimentStatus.DRAFT, ExperimentStatus.RUNNING, "start"
            )

    async def test_unknown_experiment_raises(self, store: InMemoryExperimentStore) -> None:
        """Operations on unknown experiments should raise not found."""
        with pytest.raises(ExperimentNotFoundError):
            await store.compare_and_swap_status(
                "missing", ExperimentStatus.DRAFT, ExperimentStatus.RUNNING, "start"
            )

    async def test_update_preserves_status_and_metrics(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Updates should never overwrite engine-owned fields."""
        experiment = await store.create_experiment(make_definition().to_experiment())
        experiment.status = ExperimentStatus.COMPLETED
        experiment.variants[0].metrics.visitors = 999
        experiment.description = "edited"

        updated = await store.update_experiment(experiment, ExperimentStatus.DRAFT)

        assert updated.status == ExperimentStatus.DRAFT
        assert updated.variants[0].metrics.visitors == 0
        assert updated.description == "edited"

    async def test_first_assignment_wins(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """A second assignment for the same participant returns the first one."""
        experiment = await running_experiment(store, make_definition)

        first, created = await store.assign_participant(
            participant(experiment.id, "p1", "control")
        )
        second, created_again = await store.assign_participant(
            participant(experiment.id, "p1", "treatment")
        )

        assert created is True
        assert created_again is False
        assert second.variant_id == first.variant_id == "control"
        stored = await store.get_experiment(experiment.id)
        assert stored is not None
        assert stored.variants[0].metrics.visitors == 1
        assert stored.variants[1].metrics.visitors == 0

    async def test_concurrent_assignments_resolve_to_one(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Racing first assignments should store exactly one variant."""
        experiment = await running_experiment(store, make_definition)

        results = await asyncio.gather(
            *[
                store.assign_participant(
                    participant(experiment.id, "p1", "control" if i % 2 else "treatment")
                )
                for i in range(10)
            ]
        )

        assert sum(1 for _, created in results if created) == 1
        assert len({p.variant_id for p, _ in results}) == 1

    async def test_new_assignment_requires_running(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Draft experiments cannot take new participants."""
        experiment = await store.create_experiment(make_definition().to_experiment())

        with pytest.raises(ExperimentNotRunningError):
            await store.assign_participant(participant(experiment.id, "p1", "control"))

    async def test_binary_conversion_counted_once(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Repeated binary conversions bump occurrences but not counters."""
        experiment = await running_experiment(store, make_definition)
        await store.assign_participant(participant(experiment.id, "p1", "control"))

        for _ in range(3):
            await store.record_conversion(
                ConversionEvent(
                    experiment_id=experiment.id,
                    variant_id="control",
                    participant_id="p1",
                    goal_id="signup",
                ),
                CONVERSION_STATUSES,
            )

        stored = await store.get_experiment(experiment.id)
        assert stored is not None
        assert stored.variants[0].metrics.conversions == 1
        assert stored.variants[0].metrics.conversion_rate == 1.0
        events = await store.list_conversions(experiment.id)
        assert len(events) == 1
        assert events[0].occurrences == 3

    async def test_revenue_event_idempotent_by_id(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Replaying the same revenue event should not double count."""
        experiment = await running_experiment(store, make_definition)
        await store.assign_participant(participant(experiment.id, "p1", "treatment"))
        event = ConversionEvent(
            experiment_id=experiment.id,
            variant_id="treatment",
            participant_id="p1",
            goal_id="purchase",
            value=25.0,
        )

        assert await store.record_conversion(event, CONVERSION_STATUSES) is True
        assert await store.record_conversion(event, CONVERSION_STATUSES) is False

        stored = await store.get_experiment(experiment.id)
        assert stored is not None
        assert stored.variants[1].metrics.revenue_for("purchase") == 25.0

    async def test_leases_are_exclusive_until_released(
        self, store: InMemoryExperimentStore
    ) -> None:
        """Only one holder may own a lease at a time."""
        assert await store.acquire_lease("monitor", "a", 60) is True
        assert await store.acquire_lease("monitor", "b", 60) is False
        assert await store.acquire_lease("monitor", "a", 60) is True

        await store.release_lease("monitor", "a")

        assert await store.acquire_lease("monitor", "b", 60) is True

    async def test_expired_lease_can_be_taken(self, store: InMemoryExperimentStore) -> None:
        """A lease past its TTL should be available to others."""
        assert await store.acquire_lease("monitor", "a", 0.01) is True
        await asyncio.sleep(0.05)

        assert await store.acquire_lease("monitor", "b", 60) is True


class TestResilientExperimentStore:
    """Tests for ResilientExperimentStore."""

    async def test_delegates_to_inner_store(
        self, store: InMemoryExperimentStore, make_definition
    ) -> None:
        """Successful calls should pass straight through."""
        resilient = ResilientExperimentStore(store)
        created = await resilient.create_experiment(make_definition().to_experiment())

        fetched = await resilient.get_experiment(created.id)

        assert fetched is not None
        assert fetched.id == created.id

    async def test_retries_transient_failures(self) -> None:
        """Transient errors should be retried until a call succeeds."""
        inner = AsyncMock()
        inner.get_experiment.side_effect = [StoreTimeoutError("get_experiment"), None]
        resilient = ResilientExperimentStore(inner, max_retries=2, backoff_ms=1)

        assert await resilient.get_experiment("exp_1") is None
        assert inner.get_experiment.await_count == 2

    async def test_exhausted_retries_raise_dependency_unavailable(self) -> None:
        """After the retry budget the caller gets a retryable 503 error."""
        inner = AsyncMock()
        inner.ping.side_effect = ConnectionError("refused")
        resilient = ResilientExperimentStore(inner, max_retries=2, backoff_ms=1)

        with pytest.raises(DependencyUnavailableError) as exc_info:
            await resilient.ping()

        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True
        assert inner.ping.await_count == 3

    async def test_slow_calls_time_out(self) -> None:
        """Calls slower than the timeout should count as transient failures."""

        async def slow_ping() -> None:
            await asyncio.sleep(1)

        inner = AsyncMock()
        inner.ping.side_effect = slow_ping
        resilient = ResilientExperimentStore(
            inner, timeout_seconds=0.01, max_retries=1, backoff_ms=1
        )

        with pytest.raises(DependencyUnavailableError):
            await resilient.ping()

    async def test_domain_errors_are_not_retried(self) -> None:
        """Non-transient errors should propagate immediately."""
        inner = AsyncMock()
        inner.get_experiment.side_effect = LifecycleError("exp_1", "draft", "start")
        resilient = ResilientExperimentStore(inner, max_retries=3, backoff_ms=1)

        with pytest.raises(LifecycleError):
            await resilient.get_experiment("exp_1")

        assert inner.get_experiment.await_count == 1
