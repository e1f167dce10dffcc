"""Pytest configuration and shared fixtures for the test suite."""

from typing import Any, Callable, Optional

import pytest

from liftforge.experiments.events import EventBus, RecentEventLog
from liftforge.experiments.manager import ExperimentDefinition, ExperimentManager
from liftforge.experiments.storage.memory import InMemoryExperimentStore

# Configure pytest-asyncio to use auto mode
pytest_plugins = ["pytest_asyncio"]

DefinitionFactory = Callable[..., ExperimentDefinition]


def build_definition_payload(
    name: str = "Pricing CTA copy",
    page: str = "/pricing",
    target: str = "button.cta-primary",
    allocations: tuple[float, float] = (50.0, 50.0),
    with_revenue_goal: bool = True,
    minimum_sample_size: Optional[int] = None,
) -> dict[str, Any]:
    """Camel-cased experiment definition as an API client would send it."""
    primary_weight = 0.6 if with_revenue_goal else 1.0
    payload: dict[str, Any] = {
        "name": name,
        "description": "Compare CTA copy on the pricing page",
        "type": "ab_test",
        "variants": [
            {
                "id": "control",
                "name": "Control",
                "isControl": True,
                "trafficAllocation": allocations[0],
            },
            {
                "id": "treatment",
                "name": "Start Free Trial",
                "isControl": False,
                "trafficAllocation": allocations[1],
                "changes": [
                    {
                        "type": "text",
                        "target": target,
                        "modification": {"text": "Start Free Trial"},
                    }
                ],
            },
        ],
        "primaryGoal": {
            "id": "signup",
            "name": "Signup",
            "type": "conversion",
            "weight": primary_weight,
        },
        "secondaryGoals": [],
        "statisticalSettings": {
            "confidenceLevel": 95,
            "statisticalPower": 80,
            "minimumDetectableEffect": 10,
        },
        "targetingRules": {"page": page},
    }
    if with_revenue_goal:
        payload["secondaryGoals"] = [
            {"id": "purchase", "name": "Purchase", "type": "revenue", "weight": 0.4}
        ]
    if minimum_sample_size is not None:
        payload["statisticalSettings"]["minimumSampleSize"] = minimum_sample_size
    return payload


@pytest.fixture
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def make_definition() -> DefinitionFactory:
    """Factory building experiment definitions with overridable fields."""

    def _make(**kwargs: Any) -> ExperimentDefinition:
        return ExperimentDefinition.model_validate(build_definition_payload(**kwargs))

    return _make


@pytest.fixture
def make_payload() -> Callable[..., dict[str, Any]]:
    """Factory building camel-cased definition payloads for API tests."""
    return build_definition_payload


@pytest.fixture
def store() -> InMemoryExperimentStore:
    """Fresh in-memory experiment store."""
    return InMemoryExperimentStore()


@pytest.fixture
def events() -> EventBus:
    """Event bus with no subscribers."""
    return EventBus()


@pytest.fixture
def event_log(events: EventBus) -> RecentEventLog:
    """Recent-event log subscribed to the shared bus."""
    log = RecentEventLog(limit=100)
    events.subscribe(log)
    return log


@pytest.fixture
def manager(store: InMemoryExperimentStore, events: EventBus) -> ExperimentManager:
    """Experiment manager over the in-memory store."""
    return ExperimentManager(store, events)
