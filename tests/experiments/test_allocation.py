"""Tests for deterministic traffic allocation."""

from collections import Counter

import pytest

from liftforge.experiments.allocation import TrafficAllocator


@pytest.fixture
def allocator() -> TrafficAllocator:
    """Create an allocator."""
    return TrafficAllocator()


class TestTrafficAllocator:
    """Tests for TrafficAllocator."""

    def test_bucket_is_deterministic(self, allocator: TrafficAllocator) -> None:
        """The same identity should always land in the same bucket."""
        first = allocator.bucket("exp_1", "user-42")

        assert all(allocator.bucket("exp_1", "user-42") == first for _ in range(20))
        assert 0.0 <= first < 100.0

    def test_bucket_depends_on_experiment(self, allocator: TrafficAllocator) -> None:
        """Buckets should be independent across experiments."""
        buckets = {allocator.bucket(f"exp_{i}", "user-42") for i in range(20)}

        assert len(buckets) > 1

    def test_allocate_is_stable(self, allocator: TrafficAllocator, make_definition) -> None:
        """Allocation should return the same variant for repeated calls."""
        experiment = make_definition().to_experiment()

        first = allocator.allocate(experiment, "session-abc")

        assert all(allocator.allocate(experiment, "session-abc") == first for _ in range(10))

    def test_even_split_distribution(self, allocator: TrafficAllocator, make_definition) -> None:
        """A 50/50 split over 10,000 identities should be within a few percent."""
        experiment = make_definition().to_experiment()

        counts = Counter(allocator.allocate(experiment, f"user-{i}") for i in range(10_000))

        assert set(counts) == {"control", "treatment"}
        assert abs(counts["control"] - 5000) < 300

    def test_uneven_split_distribution(self, allocator: TrafficAllocator, make_definition) -> None:
        """A 90/10 split should send roughly 10% to the treatment."""
        experiment = make_definition(allocations=(90.0, 10.0)).to_experiment()

        counts = Counter(allocator.allocate(experiment, f"user-{i}") for i in range(10_000))

        assert 700 < counts["treatment"] < 1300

    def test_zero_allocation_variant_never_served(
        self, allocator: TrafficAllocator, make_definition
    ) -> None:
        """A variant with 0% traffic should receive nobody."""
        experiment = make_definition(allocations=(100.0, 0.0)).to_experiment()

        served = {allocator.allocate(experiment, f"user-{i}") for i in range(2000)}

        assert served == {"control"}

    def test_allocate_without_variants_raises(
        self, allocator: TrafficAllocator, make_definition
    ) -> None:
        """An experiment without variants cannot allocate."""
        experiment = make_definition().to_experiment()
        experiment.variants = []

        with pytest.raises(ValueError):
            allocator.allocate(experiment, "user-1")
