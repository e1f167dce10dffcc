"""Enumerations for experiment management.

This module defines enums for experiment status and type, goal types,
device types and statistical recommendations.
"""

from enum import Enum


class ExperimentStatus(str, Enum):
    """Status of an experiment.

    Tracks the lifecycle of an experiment from creation to completion.
    """

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class ExperimentType(str, Enum):
    """How variants are delivered to participants."""

    AB_TEST = "ab_test"
    MULTIVARIATE = "multivariate"
    SPLIT_URL = "split_url"
    REDIRECT = "redirect"
    FEATURE_FLAG = "feature_flag"


class GoalType(str, Enum):
    """Kind of outcome a goal measures.

    Conversion and engagement goals are binary per participant; revenue goals
    accumulate a value on every event.
    """

    CONVERSION = "conversion"
    REVENUE = "revenue"
    ENGAGEMENT = "engagement"

    @property
    def is_additive(self) -> bool:
        """Whether repeated events for one participant add up."""
        return self is GoalType.REVENUE


class DeviceType(str, Enum):
    """Device class reported for a participant."""

    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


class RecommendationAction(str, Enum):
    """Action suggested by the statistical analyzer."""

    CONTINUE = "continue"
    STOP_WINNER = "stop_winner"
    STOP_INCONCLUSIVE = "stop_inconclusive"


class EventType(str, Enum):
    """Engine events published on the event bus."""

    EXPERIMENT_CREATED = "experiment_created"
    EXPERIMENT_UPDATED = "experiment_updated"
    EXPERIMENT_STARTED = "experiment_started"
    EXPERIMENT_PAUSED = "experiment_paused"
    EXPERIMENT_RESUMED = "experiment_resumed"
    EXPERIMENT_COMPLETED = "experiment_completed"
    ANALYSIS_COMPLETED = "analysis_completed"
    HYPOTHESIS_GENERATED = "hypothesis_generated"
    TEST_GENERATED = "test_generated"
    EARLY_WINNER_DETECTED = "early_winner_detected"
    UNDERPERFORMING_VARIANT_DETECTED = "underperforming_variant_detected"
    MONITORING_ERROR = "monitoring_error"
