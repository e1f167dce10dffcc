"""Timeout and retry wrapper around an experiment store.

Every store call is bounded by a per-call timeout and retried with
exponential backoff on transient failures. When the retry budget runs out the
caller gets a DependencyUnavailableError instead of an indefinite wait.
Domain errors raised by the store propagate immediately.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from liftforge.experiments.enums import ExperimentStatus
from liftforge.experiments.errors import DependencyUnavailableError, StoreTimeoutError
from liftforge.experiments.models import (
    ConversionEvent,
    Experiment,
    Participant,
    StatisticalResult,
)
from liftforge.experiments.storage.repository import ExperimentStore
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (asyncio.TimeoutError, StoreTimeoutError, ConnectionError)


class ResilientExperimentStore:
    """Experiment store decorator adding timeouts and bounded retries.

    Example:
        >>> store = ResilientExperimentStore(InMemoryExperimentStore(), timeout_seconds=2.0)
        >>> experiment = await store.get_experiment("exp_123")
    """

    def __init__(
        self,
        inner: ExperimentStore,
        timeout_seconds: float = 2.0,
        max_retries: int = 3,
        backoff_ms: int = 100,
        backoff_multiplier: float = 2.0,
    ) -> None:
        """Initialize the wrapper.

        Args:
            inner: Store that performs the actual operations
            timeout_seconds: Upper bound for a single call
            max_retries: Retries after the first attempt
            backoff_ms: Delay before the first retry in milliseconds
            backoff_multiplier: Growth factor of the delay between retries
        """
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_ms = backoff_ms
        self.backoff_multiplier = backoff_multiplier

    async def _call(
        self, operation: str, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Run a store call with timeout enforcement and exponential backoff.

        Raises:
            DependencyUnavailableError: If every attempt failed transiently
        """
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries + 1):
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs), timeout=self.timeout_seconds
                )
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(
                    "store_call_failed",
                    operation=operation,
                    attempt=attempt + 1,
                    error=type(e).__name__,
                )
                if attempt >= self.max_retries:
                    break
                delay_ms = self.backoff_ms * (self.backoff_multiplier**attempt)
                await asyncio.sleep(delay_ms / 1000.0)

        logger.error("store_unavailable", operation=operation, attempts=self.max_retries + 1)
        raise DependencyUnavailableError(
            "experiment store", operation, self.max_retries + 1
        ) from last_error

    async def create_experiment(self, experiment: Experiment) -> Experiment:
        return await self._call("create_experiment", self.inner.create_experiment, experiment)

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return await self._call("get_experiment", self.inner.get_experiment, experiment_id)

    async def list_experiments(
        self, status: Optional[ExperimentStatus] = None
    ) -> list[Experiment]:
        return await self._call("list_experiments", self.inner.list_experiments, status)

    async def update_experiment(
        self, experiment: Experiment, expected_status: ExperimentStatus
    ) -> Experiment:
        return await self._call(
            "update_experiment", self.inner.update_experiment, experiment, expected_status
        )

    async def compare_and_swap_status(
        self,
        experiment_id: str,
        expected: ExperimentStatus,
        new: ExperimentStatus,
        operation: str,
        changes: Optional[dict] = None,
    ) -> Experiment:
        return await self._call(
            "compare_and_swap_status",
            self.inner.compare_and_swap_status,
            experiment_id,
            expected,
            new,
            operation,
            changes,
        )

    async def assign_participant(self, participant: Participant) -> tuple[Participant, bool]:
        return await self._call("assign_participant", self.inner.assign_participant, participant)

    async def get_participant(
        self, experiment_id: str, participant_id: str
    ) -> Optional[Participant]:
        return await self._call(
            "get_participant", self.inner.get_participant, experiment_id, participant_id
        )

    async def record_conversion(
        self, event: ConversionEvent, allowed_statuses: frozenset[ExperimentStatus]
    ) -> bool:
        # The event id makes retries of additive conversions idempotent
        return await self._call(
            "record_conversion", self.inner.record_conversion, event, allowed_statuses
        )

    async def list_conversions(self, experiment_id: str) -> list[ConversionEvent]:
        return await self._call("list_conversions", self.inner.list_conversions, experiment_id)

    async def save_result(self, result: StatisticalResult) -> None:
        await self._call("save_result", self.inner.save_result, result)

    async def get_result(self, experiment_id: str) -> Optional[StatisticalResult]:
        return await self._call("get_result", self.inner.get_result, experiment_id)

    async def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        return await self._call(
            "acquire_lease", self.inner.acquire_lease, name, holder, ttl_seconds
        )

    async def release_lease(self, name: str, holder: str) -> None:
        await self._call("release_lease", self.inner.release_lease, name, holder)

    async def ping(self) -> None:
        await self._call("ping", self.inner.ping)
