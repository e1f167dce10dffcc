"""Tests for experiment definition validation."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from liftforge.experiments.models import Variant
from liftforge.experiments.validation import ExperimentValidator


@pytest.fixture
def validator() -> ExperimentValidator:
    """Create a validator."""
    return ExperimentValidator()


def codes(violations) -> set[str]:
    return {v.code for v in violations}


class TestExperimentValidator:
    """Tests for ExperimentValidator."""

    def test_valid_definition_has_no_violations(self, validator, make_definition) -> None:
        """A 50/50 split with one control should pass."""
        experiment = make_definition().to_experiment()

        assert validator.validate(experiment) == []
        assert validator.is_valid(experiment)

    def test_uneven_split_summing_to_100_is_valid(self, validator, make_definition) -> None:
        """A 60/40 split should pass."""
        experiment = make_definition(allocations=(60.0, 40.0)).to_experiment()

        assert validator.is_valid(experiment)

    def test_allocation_sum_mismatch(self, validator, make_definition) -> None:
        """A 60/50 split should fail with allocation_sum_mismatch."""
        experiment = make_definition(allocations=(60.0, 50.0)).to_experiment()

        violations = validator.validate(experiment)

        assert "allocation_sum_mismatch" in codes(violations)
        message = next(v.message for v in violations if v.code == "allocation_sum_mismatch")
        assert "110" in message

    def test_allocation_out_of_range(self, validator, make_definition) -> None:
        """Allocations outside 0-100 are reported per variant."""
        experiment = make_definition(allocations=(150.0, -50.0)).to_experiment()

        violations = validator.validate(experiment)

        out_of_range = [v for v in violations if v.code == "allocation_out_of_range"]
        assert len(out_of_range) == 2
        assert "allocation_sum_mismatch" not in codes(violations)

    def test_two_decimal_split_is_valid(self, validator, make_definition) -> None:
        """Two-decimal splits that add up to 100 should pass."""
        experiment = make_definition(allocations=(33.34, 66.66)).to_experiment()

        assert "allocation_sum_mismatch" not in codes(validator.validate(experiment))

    def test_single_variant_rejected(self, validator, make_definition) -> None:
        """At least two variants are required."""
        experiment = make_definition().to_experiment()
        experiment.variants = experiment.variants[:1]
        experiment.variants[0].traffic_allocation = 100.0

        assert "too_few_variants" in codes(validator.validate(experiment))

    def test_control_count_must_be_one(self, validator, make_definition) -> None:
        """Zero or two controls are both invalid."""
        experiment = make_definition().to_experiment()
        experiment.variants[1].is_control = True

        assert "control_count" in codes(validator.validate(experiment))

        experiment.variants[0].is_control = False
        experiment.variants[1].is_control = False

        assert "control_count" in codes(validator.validate(experiment))

    def test_duplicate_variant_ids_and_names(self, validator, make_definition) -> None:
        """Variant ids and names must be unique."""
        experiment = make_definition().to_experiment()
        experiment.variants[1].id = experiment.variants[0].id
        experiment.variants[1].name = experiment.variants[0].name

        found = codes(validator.validate(experiment))

        assert "duplicate_variant_id" in found
        assert "duplicate_variant_name" in found

    def test_goal_weights_must_sum_to_one(self, validator, make_definition) -> None:
        """Primary 0.6 plus secondary 0.6 should be rejected."""
        experiment = make_definition().to_experiment()
        experiment.secondary_goals[0].weight = 0.6

        assert "goal_weight_sum_mismatch" in codes(validator.validate(experiment))

    def test_statistical_ranges(self, validator, make_definition) -> None:
        """Confidence, power and MDE must be within their ranges."""
        experiment = make_definition().to_experiment()
        experiment.statistical_settings.confidence_level = 75
        experiment.statistical_settings.statistical_power = 99
        experiment.statistical_settings.minimum_detectable_effect = 0

        found = codes(validator.validate(experiment))

        assert {"confidence_out_of_range", "power_out_of_range", "effect_not_positive"} <= found

    def test_all_violations_reported_together(self, validator, make_definition) -> None:
        """Every broken rule should be reported in one pass."""
        experiment = make_definition(allocations=(70.0, 70.0)).to_experiment()
        experiment.variants[1].is_control = True
        experiment.statistical_settings.confidence_level = 50

        found = codes(validator.validate(experiment))

        assert {"allocation_sum_mismatch", "control_count", "confidence_out_of_range"} <= found

    def test_validation_does_not_mutate_input(self, validator, make_definition) -> None:
        """The validator should leave the experiment untouched."""
        experiment = make_definition(allocations=(60.0, 50.0)).to_experiment()
        before = experiment.model_dump()

        validator.validate(experiment)

        assert experiment.model_dump() == before


class TestVariantModel:
    """Tests for variant field validation."""

    def test_allocation_precision_limited_to_two_decimals(self) -> None:
        """More than two decimal places should be rejected."""
        with pytest.raises(PydanticValidationError):
            Variant(name="A", traffic_allocation=33.333)

    def test_allocation_range_left_to_validator(self) -> None:
        """Out-of-range allocations parse so the validator can report them."""
        assert Variant(name="A", traffic_allocation=150).traffic_allocation == 150
