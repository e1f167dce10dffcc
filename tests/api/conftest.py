"""Shared fixtures for API route tests."""

from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from liftforge.api.app import create_app
from liftforge.config import LiftForgeSettings, MonitoringSettings
from liftforge.service import ExperimentationService


@pytest.fixture
def settings() -> LiftForgeSettings:
    """Settings with the monitoring scheduler disabled and plain-text logs."""
    return LiftForgeSettings(monitoring=MonitoringSettings(enabled=False), json_logs=False)


@pytest.fixture
def service(settings: LiftForgeSettings) -> ExperimentationService:
    """Service backing the test application."""
    return ExperimentationService(settings)


@pytest.fixture
def client(service: ExperimentationService) -> Iterator[TestClient]:
    """Test client running the application lifespan."""
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


@pytest.fixture
def create_experiment(client: TestClient, make_payload):
    """Create an experiment through the API and return its JSON."""

    def _create(**kwargs: Any) -> dict[str, Any]:
        response = client.post("/experiments", json=make_payload(**kwargs))
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create
