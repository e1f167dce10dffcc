"""Experiment management for controlled A/B and multivariate tests.

This package provides experiment definitions and validation, deterministic
traffic allocation, conversion recording, statistical analysis, deployment
conflict detection and the monitoring loop.
"""

from liftforge.experiments.allocation import TrafficAllocator
from liftforge.experiments.analysis import StatisticalAnalyzer
from liftforge.experiments.conflicts import DeploymentConflictDetector
from liftforge.experiments.conversions import ConversionRecorder
from liftforge.experiments.events import EventBus, ExperimentEvent
from liftforge.experiments.manager import (
    Assignment,
    ExperimentDefinition,
    ExperimentManager,
    ExperimentPatch,
    ParticipantRequest,
)
from liftforge.experiments.monitoring import MonitoringLoop
from liftforge.experiments.validation import ExperimentValidator, Violation

__all__ = [
    "Assignment",
    "ConversionRecorder",
    "DeploymentConflictDetector",
    "EventBus",
    "ExperimentDefinition",
    "ExperimentEvent",
    "ExperimentManager",
    "ExperimentPatch",
    "ExperimentValidator",
    "MonitoringLoop",
    "ParticipantRequest",
    "StatisticalAnalyzer",
    "TrafficAllocator",
    "Violation",
]
