"""Experiment lifecycle state machine.

    draft -> running -> paused -> running -> completed

``completed`` is terminal; running and paused experiments can be completed.
"""

from dataclasses import dataclass

from liftforge.experiments.enums import EventType, ExperimentStatus
from liftforge.experiments.errors import LifecycleError


@dataclass(frozen=True)
class Transition:
    """A named status change.

    Attributes:
        name: Operation name used in logs, metrics and errors
        sources: Statuses the transition may start from
        target: Status after the transition
        event: Event published once the transition succeeds
    """

    name: str
    sources: frozenset[ExperimentStatus]
    target: ExperimentStatus
    event: EventType


START = Transition(
    "start",
    frozenset({ExperimentStatus.DRAFT}),
    ExperimentStatus.RUNNING,
    EventType.EXPERIMENT_STARTED,
)
PAUSE = Transition(
    "pause",
    frozenset({ExperimentStatus.RUNNING}),
    ExperimentStatus.PAUSED,
    EventType.EXPERIMENT_PAUSED,
)
RESUME = Transition(
    "resume",
    frozenset({ExperimentStatus.PAUSED}),
    ExperimentStatus.RUNNING,
    EventType.EXPERIMENT_RESUMED,
)
COMPLETE = Transition(
    "complete",
    frozenset({ExperimentStatus.RUNNING, ExperimentStatus.PAUSED}),
    ExperimentStatus.COMPLETED,
    EventType.EXPERIMENT_COMPLETED,
)

TRANSITIONS = {t.name: t for t in (START, PAUSE, RESUME, COMPLETE)}

# Statuses in which existing assignments are still honored
ASSIGNMENT_STATUSES = frozenset({ExperimentStatus.RUNNING, ExperimentStatus.PAUSED})

# Statuses in which conversions of already-assigned participants are accepted
CONVERSION_STATUSES = frozenset({ExperimentStatus.RUNNING, ExperimentStatus.PAUSED})

# Definitions may only be edited before any traffic is served
EDITABLE_STATUSES = frozenset({ExperimentStatus.DRAFT})


def check_transition(
    transition: Transition, experiment_id: str, current: ExperimentStatus
) -> None:
    """Raise if a transition is not allowed from the current status.

    Raises:
        LifecycleError: If current is not a source status of the transition
    """
    if current not in transition.sources:
        raise LifecycleError(experiment_id, current.value, transition.name)
