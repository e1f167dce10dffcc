"""Deployment conflict detection.

Two experiments collide when both modify the same element on the same page.
An experiment targeting the site-wide page ``*`` overlaps every page, and a
change to the element ``*`` rewrites the whole page so it overlaps every element.
"""

from dataclasses import dataclass

from liftforge.experiments.enums import ExperimentStatus
from liftforge.experiments.models import SITE_WIDE_PAGE, WHOLE_PAGE_ELEMENT, Experiment


@dataclass(frozen=True)
class Touchpoint:
    """A (page, element selector) pair an experiment modifies."""

    page: str
    element: str

    def overlaps(self, other: "Touchpoint") -> bool:
        """Whether two touchpoints hit the same element on a shared page."""
        whole_page = WHOLE_PAGE_ELEMENT in (self.element, other.element)
        if self.element != other.element and not whole_page:
            return False
        return self.page == other.page or SITE_WIDE_PAGE in (self.page, other.page)


@dataclass
class Conflict:
    """A running experiment colliding with a candidate.

    Attributes:
        experiment_id: ID of the running experiment
        touchpoints: Candidate touchpoints that overlap it
    """

    experiment_id: str
    touchpoints: list[Touchpoint]


def touchpoints_of(experiment: Experiment) -> set[Touchpoint]:
    """Collect the touchpoints of every change in every variant."""
    page = experiment.targeting_rules.page
    return {
        Touchpoint(page=page, element=change.target.strip())
        for variant in experiment.variants
        for change in variant.changes
    }


class DeploymentConflictDetector:
    """Finds running experiments that collide with a candidate."""

    def find_conflicts(
        self, candidate: Experiment, others: list[Experiment]
    ) -> list[Conflict]:
        """Check a candidate against other experiments.

        Only running experiments other than the candidate itself are considered.

        Args:
            candidate: Experiment about to start
            others: Experiments to check against

        Returns:
            Conflicts in the order of ``others``; empty when deployment is safe
        """
        candidate_points = touchpoints_of(candidate)
        if not candidate_points:
            return []

        conflicts: list[Conflict] = []
        for other in others:
            if other.id == candidate.id or other.status != ExperimentStatus.RUNNING:
                continue
            other_points = touchpoints_of(other)
            overlapping = sorted(
                (p for p in candidate_points if any(p.overlaps(o) for o in other_points)),
                key=lambda p: (p.page, p.element),
            )
            if overlapping:
                conflicts.append(Conflict(experiment_id=other.id, touchpoints=overlapping))
        return conflicts
