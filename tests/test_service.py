"""Tests for the experimentation service composition root."""

import pytest

from liftforge.autonomous.models import PageSignals
from liftforge.config import AutonomousSettings, LiftForgeSettings, MonitoringSettings
from liftforge.experiments.enums import EventType, ExperimentStatus
from liftforge.service import ExperimentationService


def signals() -> list[PageSignals]:
    """One struggling CTA, one struggling headline and one healthy element."""
    return [
        PageSignals(
            page="/checkout",
            element="button.cta-primary",
            visitors=3000,
            conversion_rate=0.01,
            bounce_rate=0.7,
            time_on_page=15.0,
            click_through_rate=0.02,
        ),
        PageSignals(
            page="/",
            element="h1.hero-title",
            visitors=800,
            conversion_rate=0.02,
            bounce_rate=0.55,
            time_on_page=50.0,
            click_through_rate=0.08,
        ),
        PageSignals(
            page="/pricing",
            element="div.testimonials",
            visitors=1500,
            conversion_rate=0.06,
            bounce_rate=0.2,
            time_on_page=120.0,
            click_through_rate=0.3,
        ),
    ]


@pytest.fixture
def service() -> ExperimentationService:
    """Service with monitoring disabled."""
    return ExperimentationService(
        LiftForgeSettings(monitoring=MonitoringSettings(enabled=False))
    )


class TestExperimentationService:
    """Tests for ExperimentationService."""

    async def test_auto_generate_creates_ranked_drafts(
        self, service: ExperimentationService
    ) -> None:
        """Every opportunity becomes a stored draft in ranking order."""
        report = await service.auto_generate(signals())

        assert [o.element for o in report.opportunities] == [
            "button.cta-primary",
            "h1.hero-title",
        ]
        assert len(report.hypotheses) == 2
        assert len(report.experiments) == 2
        assert report.skipped == []
        for experiment in report.experiments:
            stored = await service.experiments.get_experiment(experiment.id)
            assert stored.status == ExperimentStatus.DRAFT
            assert stored.metadata.generated_by == "autonomous"
        assert len(service.event_log.recent(event_type=EventType.TEST_GENERATED)) == 2

    async def test_auto_generate_respects_max_experiments(
        self, service: ExperimentationService
    ) -> None:
        """Generation stops once the requested number of drafts exists."""
        report = await service.auto_generate(signals(), max_experiments=1)

        assert len(report.experiments) == 1
        assert report.experiments[0].targeting_rules.page == "/checkout"
        _, total = await service.experiments.list_experiments()
        assert total == 1

    async def test_disabled_category_is_skipped(self) -> None:
        """Opportunities in disabled categories are reported, not built."""
        service = ExperimentationService(
            LiftForgeSettings(
                monitoring=MonitoringSettings(enabled=False),
                autonomous=AutonomousSettings(enabled_categories=frozenset({"headline"})),
            )
        )

        report = await service.auto_generate(signals())

        assert len(report.experiments) == 1
        assert report.skipped[0].opportunity_id == report.opportunities[0].id
        assert "cta" in report.skipped[0].reason

    async def test_generated_experiment_can_start(
        self, service: ExperimentationService
    ) -> None:
        """Generated drafts pass validation when started."""
        report = await service.auto_generate(signals(), max_experiments=1)

        started = await service.experiments.start_experiment(report.experiments[0].id)

        assert started.status == ExperimentStatus.RUNNING

    async def test_start_and_stop_without_monitoring(
        self, service: ExperimentationService
    ) -> None:
        """A disabled monitor is never scheduled."""
        await service.start()
        assert service.monitoring.running is False
        await service.stop()

    async def test_start_and_stop_with_monitoring(self) -> None:
        """An enabled monitor runs between start and stop."""
        service = ExperimentationService(LiftForgeSettings())

        await service.start()
        assert service.monitoring.running is True
        await service.stop()
