"""Tests for the autonomous optimization endpoints."""

from typing import Any

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def signals_payload() -> list[dict[str, Any]]:
    """Signals for one struggling button and one healthy headline."""
    return [
        {
            "page": "/checkout",
            "element": "button.cta-primary",
            "visitors": 2400,
            "conversionRate": 0.012,
            "bounceRate": 0.68,
            "timeOnPage": 22,
            "clickThroughRate": 0.03,
            "segmentPerformance": {"mobile": 0.006, "desktop": 0.018},
        },
        {
            "page": "/",
            "element": "h1.hero-title",
            "visitors": 5000,
            "conversionRate": 0.05,
            "bounceRate": 0.3,
            "timeOnPage": 95,
            "clickThroughRate": 0.25,
        },
    ]


class TestAutonomousEndpoints:
    """Tests for opportunities, hypotheses and generated experiments."""

    def test_analyze_and_latest(self, client: TestClient, signals_payload) -> None:
        """Analysis ranks opportunities and is remembered as the latest."""
        response = client.post("/autonomous/opportunities", json={"signals": signals_payload})

        data = response.json()["data"]
        assert response.status_code == 200
        assert [o["element"] for o in data] == ["button.cta-primary"]
        assert data[0]["severity"] == "critical"
        assert "potentialImpact" in data[0]

        latest = client.get("/autonomous/opportunities").json()["data"]
        assert [o["id"] for o in latest] == [data[0]["id"]]

    def test_empty_signals_rejected(self, client: TestClient) -> None:
        """At least one signal is required."""
        response = client.post("/autonomous/opportunities", json={"signals": []})

        assert response.status_code == 400

    def test_out_of_range_rate_rejected(self, client: TestClient, signals_payload) -> None:
        """Rates are fractions between 0 and 1."""
        signals_payload[0]["conversionRate"] = 3.5

        response = client.post("/autonomous/opportunities", json={"signals": signals_payload})

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_opportunity_to_hypothesis_to_experiment(
        self, client: TestClient, signals_payload
    ) -> None:
        """The pipeline can be driven one step at a time."""
        opportunity = client.post(
            "/autonomous/opportunities", json={"signals": signals_payload}
        ).json()["data"][0]

        hypothesis = client.post("/autonomous/hypotheses", json=opportunity).json()["data"]
        assert hypothesis["category"] == "cta"
        assert len(hypothesis["proposedChanges"]) == 2

        response = client.post(
            "/autonomous/experiments",
            json={"hypothesis": hypothesis, "trafficSplit": [50, 25, 25], "owner": "growth"},
        )

        assert response.status_code == 201
        experiment = response.json()["data"]
        assert experiment["status"] == "draft"
        assert [v["trafficAllocation"] for v in experiment["variants"]] == [50, 25, 25]
        assert experiment["metadata"]["owner"] == "growth"
        assert client.get(f"/experiments/{experiment['id']}").status_code == 200

    def test_hypothesis_without_changes_rejected(
        self, client: TestClient, signals_payload
    ) -> None:
        """Building needs at least one proposed change."""
        opportunity = client.post(
            "/autonomous/opportunities", json={"signals": signals_payload}
        ).json()["data"][0]
        hypothesis = client.post("/autonomous/hypotheses", json=opportunity).json()["data"]
        hypothesis["proposedChanges"] = []

        response = client.post("/autonomous/experiments", json={"hypothesis": hypothesis})

        assert response.status_code == 400
        assert response.json()["details"]["violations"][0]["code"] == "no_proposed_changes"

    def test_auto_generate(self, client: TestClient, signals_payload) -> None:
        """One call produces stored drafts and an event trail."""
        response = client.post(
            "/autonomous/auto-generate", json={"signals": signals_payload, "maxExperiments": 2}
        )

        assert response.status_code == 201
        report = response.json()["data"]
        assert len(report["experiments"]) == 1
        assert report["skipped"] == []

        events = client.get("/events", params={"type": "test_generated"}).json()["data"]
        assert events[0]["experimentId"] == report["experiments"][0]["id"]

    def test_manual_monitoring_cycle(self, client: TestClient, create_experiment) -> None:
        """A monitoring cycle can be triggered on demand."""
        experiment_id = create_experiment()["id"]
        client.post(f"/experiments/{experiment_id}/start")

        response = client.post("/autonomous/monitor")

        report = response.json()["data"]
        assert report["skipped"] is False
        assert report["experimentsChecked"] == 1
        assert report["flags"] == []
