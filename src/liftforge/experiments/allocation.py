"""Traffic allocation for experiments.

This module provides deterministic variant selection based on participant
identifiers, ensuring consistent assignment of participants to variants.
"""

import hashlib

from liftforge.experiments.models import Experiment

# Hash buckets per percentage point; yields a 0.00-99.99 scale.
BUCKETS_PER_PERCENT = 100
TOTAL_BUCKETS = 100 * BUCKETS_PER_PERCENT


class TrafficAllocator:
    """Allocates traffic across experiment variants using consistent hashing.

    The allocator uses SHA-256 hashing to deterministically assign participants
    to variants based on their identity and the experiment ID. The same identity
    always lands on the same variant for a given experiment and allocation.
    """

    def bucket(self, experiment_id: str, identity: str) -> float:
        """Map an identity to a position on the 0.00-99.99 allocation scale.

        Args:
            experiment_id: Experiment the identity is bucketed for
            identity: User or session identifier

        Returns:
            Percentage position of the identity
        """
        hash_input = f"{experiment_id}:{identity}".encode("utf-8")
        hash_digest = hashlib.sha256(hash_input).hexdigest()

        hash_int = int(hash_digest[:8], 16)
        return (hash_int % TOTAL_BUCKETS) / float(BUCKETS_PER_PERCENT)

    def allocate(self, experiment: Experiment, identity: str) -> str:
        """Allocate an identity to a variant.

        Walks the variants in their declared order, accumulating their
        allocation into contiguous ranges, and returns the variant whose range
        contains the identity's bucket.

        Args:
            experiment: The experiment to allocate for
            identity: User or session identifier

        Returns:
            The variant ID the identity should see

        Raises:
            ValueError: If the experiment has no variants

        Example:
            >>> allocator = TrafficAllocator()
            >>> variant_id = allocator.allocate(experiment, "user-123")
        """
        if not experiment.variants:
            raise ValueError(f"Experiment '{experiment.id}' has no variants")

        percentage = self.bucket(experiment.id, identity)

        cumulative = 0.0
        for variant in experiment.variants:
            cumulative += variant.traffic_allocation
            if percentage < cumulative:
                return variant.id

        # Rounding can leave the top of the scale uncovered
        return experiment.variants[-1].id
