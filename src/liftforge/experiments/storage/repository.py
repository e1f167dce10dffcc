"""Store protocol for experiment data.

This module defines the interface every experiment store must implement.
The operations marked atomic must be linearizable per experiment: the engine
relies on them for first-assignment-wins, status compare-and-swap and
idempotent conversion recording.
"""

from typing import Optional, Protocol

from liftforge.experiments.enums import ExperimentStatus
from liftforge.experiments.models import (
    ConversionEvent,
    Experiment,
    Participant,
    StatisticalResult,
)


class ExperimentStore(Protocol):
    """Protocol defining storage operations for experiments and their traffic.

    All methods are async to support remote backends.
    """

    async def create_experiment(self, experiment: Experiment) -> Experiment:
        """Persist a new experiment.

        Raises:
            ValidationError: If an experiment with the same ID exists
        """
        ...

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        """Retrieve an experiment by ID, None if missing."""
        ...

    async def list_experiments(
        self, status: Optional[ExperimentStatus] = None
    ) -> list[Experiment]:
        """List experiments, optionally filtered by status, oldest first."""
        ...

    async def update_experiment(
        self, experiment: Experiment, expected_status: ExperimentStatus
    ) -> Experiment:
        """Replace an experiment's definition if its stored status still matches.

        Variant metrics are preserved from the stored copy.

        Raises:
            ExperimentNotFoundError: If the experiment does not exist
            LifecycleError: If the stored status differs from expected_status
        """
        ...

    async def compare_and_swap_status(
        self,
        experiment_id: str,
        expected: ExperimentStatus,
        new: ExperimentStatus,
        operation: str,
        changes: Optional[dict] = None,
    ) -> Experiment:
        """Atomically move an experiment from one status to another.

        Args:
            experiment_id: Experiment to transition
            expected: Status the experiment must currently have
            new: Status to move to
            operation: Name of the transition, used in errors
            changes: Extra attribute updates applied with the transition

        Raises:
            ExperimentNotFoundError: If the experiment does not exist
            LifecycleError: If the current status differs from expected
        """
        ...

    async def assign_participant(self, participant: Participant) -> tuple[Participant, bool]:
        """Store a participant unless one already exists for the same identity.

        Atomic: the first assignment wins and increments the variant's visitors.
        New assignments require the experiment to be running.

        Returns:
            Tuple of (stored participant, whether it was created by this call)

        Raises:
            ExperimentNotFoundError: If the experiment does not exist
            ExperimentNotRunningError: If a new assignment arrives while not running
        """
        ...

    async def get_participant(
        self, experiment_id: str, participant_id: str
    ) -> Optional[Participant]:
        """Retrieve an existing assignment."""
        ...

    async def record_conversion(
        self, event: ConversionEvent, allowed_statuses: frozenset[ExperimentStatus]
    ) -> bool:
        """Append a conversion and update the variant's counters atomically.

        Binary goals count once per (participant, goal); revenue goals add their
        value on every distinct event ID.

        Returns:
            True if the call changed any counter

        Raises:
            ExperimentNotFoundError: If the experiment does not exist
            LifecycleError: If the experiment status is not in allowed_statuses
        """
        ...

    async def list_conversions(self, experiment_id: str) -> list[ConversionEvent]:
        """All conversion events of an experiment, oldest first."""
        ...

    async def save_result(self, result: StatisticalResult) -> None:
        """Store the final statistical result of an experiment."""
        ...

    async def get_result(self, experiment_id: str) -> Optional[StatisticalResult]:
        """Retrieve a stored statistical result."""
        ...

    async def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        """Take or renew a named lease; False if another holder owns it."""
        ...

    async def release_lease(self, name: str, holder: str) -> None:
        """Release a lease if held by holder."""
        ...

    async def ping(self) -> None:
        """Raise if the store is unreachable."""
        ...
