"""Shared fixtures for the autonomous pipeline tests."""

from typing import Any, Callable

import pytest

from liftforge.autonomous.models import PageSignals


@pytest.fixture
def make_signals() -> Callable[..., PageSignals]:
    """Factory for element signals; defaults describe a struggling checkout button."""

    def _make(**overrides: Any) -> PageSignals:
        data: dict[str, Any] = {
            "page": "/checkout",
            "element": "button.cta-primary",
            "visitors": 2000,
            "conversion_rate": 0.01,
            "bounce_rate": 0.7,
            "time_on_page": 20.0,
            "click_through_rate": 0.03,
            "revenue_per_visitor": 1.5,
            "segment_performance": {"mobile": 0.005, "desktop": 0.02},
            "behavioral_patterns": ["Most visitors leave before scrolling"],
        }
        data.update(overrides)
        return PageSignals(**data)

    return _make


@pytest.fixture
def healthy_signals(make_signals) -> PageSignals:
    """Signals meeting every default benchmark."""
    return make_signals(
        element="h1.hero-headline",
        conversion_rate=0.05,
        bounce_rate=0.3,
        time_on_page=90.0,
        click_through_rate=0.2,
        segment_performance={},
        behavioral_patterns=[],
    )
