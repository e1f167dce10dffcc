"""Experiment storage implementations.

This package provides the store interface, an in-memory implementation and
a resilient wrapper adding timeouts and retries.
"""

from liftforge.experiments.storage.memory import InMemoryExperimentStore
from liftforge.experiments.storage.repository import ExperimentStore
from liftforge.experiments.storage.resilient import ResilientExperimentStore

__all__ = [
    "ExperimentStore",
    "InMemoryExperimentStore",
    "ResilientExperimentStore",
]
