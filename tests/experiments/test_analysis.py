"""Tests for the statistical analyzer."""

import pytest

from liftforge.experiments.analysis import StatisticalAnalyzer, z_critical
from liftforge.experiments.enums import RecommendationAction
from liftforge.experiments.errors import ComputationGuardError, ValidationError
from liftforge.experiments.models import Experiment, PerformanceMetrics


@pytest.fixture
def analyzer() -> StatisticalAnalyzer:
    """Create an analyzer with the default sample-size floor of 1000."""
    return StatisticalAnalyzer()


def with_traffic(
    experiment: Experiment,
    control: tuple[int, int],
    treatment: tuple[int, int],
    revenue: tuple[float, float] = (0.0, 0.0),
) -> Experiment:
    """Set (conversions, visitors) on control and treatment for the signup goal."""
    for variant, (conversions, visitors), amount in zip(
        experiment.variants, (control, treatment), revenue
    ):
        variant.metrics = PerformanceMetrics(
            visitors=visitors,
            conversions=conversions,
            conversion_rate=conversions / visitors if visitors else 0.0,
            goal_conversions={"signup": conversions},
            goal_revenue={"purchase": amount},
        )
    return experiment


class TestSignificance:
    """Tests for the two-proportion comparison."""

    def test_identical_rates_have_no_confidence(self, analyzer: StatisticalAnalyzer) -> None:
        """Equal rates should give z = 0 and confidence close to 0."""
        result = analyzer.compare((50, 1000), (50, 1000), 95)

        assert result.z_score == pytest.approx(0.0)
        assert result.confidence == pytest.approx(0.0, abs=1e-9)
        assert result.meets_confidence_target is False

    def test_small_difference_is_not_significant(self, analyzer: StatisticalAnalyzer) -> None:
        """2% vs 3% on 1000 visitors each should stay below 95% confidence."""
        result = analyzer.compare((20, 1000), (30, 1000), 95)

        assert result.improvement == pytest.approx(50.0)
        assert 80 < result.confidence < 95
        assert result.meets_confidence_target is False

    def test_large_difference_is_significant(self, analyzer: StatisticalAnalyzer) -> None:
        """10% vs 15% on 1000 visitors each should exceed 99% confidence."""
        result = analyzer.compare((100, 1000), (150, 1000), 95)

        assert result.confidence > 99
        assert result.meets_confidence_target is True
        assert result.confidence_interval is not None
        assert result.confidence_interval.lower > 0

    def test_empty_groups_are_guarded(self, analyzer: StatisticalAnalyzer) -> None:
        """No visitors should report confidence 0 and p-value 1."""
        result = analyzer.compare((0, 0), (0, 0), 95)

        assert result.confidence == 0.0
        assert result.p_value == 1.0
        assert result.confidence_interval is None

    def test_zero_pooled_variance_is_guarded(self, analyzer: StatisticalAnalyzer) -> None:
        """No conversions anywhere should not divide by zero."""
        result = analyzer.compare((0, 1000), (0, 1000), 95)

        assert result.confidence == 0.0
        assert result.z_score == 0.0

    def test_proportion_test_raises_guard(self, analyzer: StatisticalAnalyzer) -> None:
        """The raw test should raise ComputationGuardError on empty groups."""
        with pytest.raises(ComputationGuardError):
            analyzer.two_proportion_test(0, 0, 5, 100)

    def test_p_value_for_known_difference(self, analyzer: StatisticalAnalyzer) -> None:
        """10% vs 15% over 1000 visitors each gives z of about 3.38."""
        test = analyzer.two_proportion_test(100, 1000, 150, 1000)

        assert test.z_score == pytest.approx(3.3806, rel=1e-3)
        assert test.p_value == pytest.approx(0.000723, rel=1e-2)

    def test_p_value_keeps_precision_in_the_tail(self, analyzer: StatisticalAnalyzer) -> None:
        """Very large z-scores give a tiny positive p-value rather than exactly 0."""
        test = analyzer.two_proportion_test(100, 1000, 400, 1000)

        assert 0.0 < test.p_value < 1e-40

    def test_z_critical_for_95(self) -> None:
        """95% two-tailed should use z of about 1.96."""
        assert z_critical(95) == pytest.approx(1.959964, rel=1e-4)


class TestAnalyze:
    """Tests for full experiment analysis."""

    def test_no_winner_for_small_difference(
        self, analyzer: StatisticalAnalyzer, make_definition
    ) -> None:
        """2%/1000 vs 3%/1000 at 95% should produce no winner."""
        experiment = with_traffic(make_definition().to_experiment(), (20, 1000), (30, 1000))

        result = analyzer.analyze(experiment)

        assert result.winner is None
        treatment = result.primary.get_variant("treatment")
        assert treatment is not None
        assert treatment.confidence < 95
        assert result.recommendation.action == RecommendationAction.CONTINUE

    def test_winner_and_stop_recommendation(
        self, analyzer: StatisticalAnalyzer, make_definition
    ) -> None:
        """A significant lift on enough traffic should recommend stopping with a winner."""
        experiment = with_traffic(make_definition().to_experiment(), (100, 1000), (150, 1000))

        result = analyzer.analyze(experiment)

        assert result.winner is not None
        assert result.winner.variant_id == "treatment"
        assert result.sample_size_sufficient is True
        assert result.recommendation.action == RecommendationAction.STOP_WINNER
        assert result.total_visitors == 2000
        assert result.total_conversions == 250

    def test_insufficient_sample_continues(
        self, analyzer: StatisticalAnalyzer, make_definition
    ) -> None:
        """Below the required sample size the recommendation is to continue."""
        experiment = with_traffic(make_definition().to_experiment(), (10, 100), (30, 100))

        result = analyzer.analyze(experiment)

        assert result.sample_size_sufficient is False
        assert result.required_sample_size == 1000
        assert result.recommendation.action == RecommendationAction.CONTINUE

    def test_declared_minimum_sample_size_is_used(
        self, analyzer: StatisticalAnalyzer, make_definition
    ) -> None:
        """A declared minimum sample size should replace the default floor."""
        experiment = with_traffic(
            make_definition(minimum_sample_size=100).to_experiment(), (10, 100), (30, 100)
        )

        result = analyzer.analyze(experiment)

        assert result.required_sample_size == 100
        assert result.sample_size_sufficient is True

    def test_inconclusive_after_twice_the_sample(
        self, analyzer: StatisticalAnalyzer, make_definition
    ) -> None:
        """No significance after twice the required sample should recommend stopping."""
        experiment = with_traffic(make_definition().to_experiment(), (100, 2500), (101, 2500))

        result = analyzer.analyze(experiment)

        assert result.recommendation.action == RecommendationAction.STOP_INCONCLUSIVE

    def test_secondary_revenue_goal_reported(
        self, analyzer: StatisticalAnalyzer, make_definition
    ) -> None:
        """Revenue goals should carry revenue per visitor."""
        experiment = with_traffic(
            make_definition().to_experiment(), (20, 1000), (30, 1000), revenue=(500.0, 800.0)
        )

        result = analyzer.analyze(experiment)

        revenue_goal = result.goals[1]
        assert revenue_goal.goal_id == "purchase"
        treatment = revenue_goal.get_variant("treatment")
        assert treatment is not None
        assert treatment.revenue == pytest.approx(800.0)
        assert treatment.revenue_per_visitor == pytest.approx(0.8)


class TestSampleSize:
    """Tests for sample size estimation."""

    def test_estimate_shape(self, analyzer: StatisticalAnalyzer) -> None:
        """Totals and duration should follow from the per-variant figure."""
        estimate = analyzer.sample_size(5.0, 20.0, variant_count=3, daily_traffic=500)

        assert estimate.per_variant > 0
        assert estimate.total == estimate.per_variant * 3
        assert estimate.estimated_duration_days == -(-estimate.total // 500)
        assert estimate.expected_conversion_rate == pytest.approx(6.0)

    def test_known_value(self, analyzer: StatisticalAnalyzer) -> None:
        """5% baseline and 20% lift at 95/80 needs roughly 8,150 per variant."""
        estimate = analyzer.sample_size(5.0, 20.0)

        assert 8000 < estimate.per_variant < 8300

    def test_halving_mde_at_least_doubles_sample(self, analyzer: StatisticalAnalyzer) -> None:
        """Smaller effects need disproportionately more traffic."""
        large = analyzer.sample_size(5.0, 20.0)
        small = analyzer.sample_size(5.0, 10.0)

        assert small.per_variant >= 2 * large.per_variant

    def test_higher_confidence_needs_more_traffic(self, analyzer: StatisticalAnalyzer) -> None:
        """Raising confidence should raise the sample size."""
        assert (
            analyzer.sample_size(5.0, 20.0, confidence_level=99).per_variant
            > analyzer.sample_size(5.0, 20.0, confidence_level=90).per_variant
        )

    @pytest.mark.parametrize(
        "baseline,mde",
        [(0.0, 10.0), (100.0, 10.0), (5.0, 0.0), (5.0, -10.0), (60.0, 100.0)],
    )
    def test_degenerate_inputs_rejected(
        self, analyzer: StatisticalAnalyzer, baseline: float, mde: float
    ) -> None:
        """Undefined estimates should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            analyzer.sample_size(baseline, mde)

        assert exc_info.value.violations
