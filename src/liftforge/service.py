"""Composition root wiring the experimentation engine together.

The service owns one store, one event bus and one instance of every engine
component. The API and the CLI talk to the engine only through it.
"""

from typing import Optional

from pydantic import Field

from liftforge.autonomous.builder import ExperimentBuilder
from liftforge.autonomous.hypotheses import HypothesisGenerator
from liftforge.autonomous.models import OptimizationOpportunity, PageSignals, TestHypothesis
from liftforge.autonomous.opportunities import OpportunityAnalyzer
from liftforge.config import LiftForgeSettings
from liftforge.experiments.analysis import StatisticalAnalyzer
from liftforge.experiments.enums import EventType
from liftforge.experiments.events import EventBus, RecentEventLog
from liftforge.experiments.manager import ExperimentManager
from liftforge.experiments.models import CamelModel, Experiment
from liftforge.experiments.monitoring import MonitoringLoop
from liftforge.experiments.storage.memory import InMemoryExperimentStore
from liftforge.experiments.storage.repository import ExperimentStore
from liftforge.experiments.storage.resilient import ResilientExperimentStore
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)


class SkippedOpportunity(CamelModel):
    """An opportunity that produced no experiment."""

    opportunity_id: str
    reason: str


class AutoGenerateReport(CamelModel):
    """Outcome of one autonomous generation run."""

    opportunities: list[OptimizationOpportunity] = Field(default_factory=list)
    hypotheses: list[TestHypothesis] = Field(default_factory=list)
    experiments: list[Experiment] = Field(default_factory=list)
    skipped: list[SkippedOpportunity] = Field(default_factory=list)


class ExperimentationService:
    """Engine facade used by the API and the CLI.

    Example:
        >>> service = ExperimentationService(LiftForgeSettings())
        >>> await service.start()
        >>> experiment = await service.experiments.create_experiment(definition)
        >>> await service.stop()
    """

    def __init__(
        self,
        settings: Optional[LiftForgeSettings] = None,
        store: Optional[ExperimentStore] = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Service configuration, defaults when omitted
            store: Backing store, in-memory when omitted; always wrapped for resilience
        """
        self.settings = settings or LiftForgeSettings()
        store_settings = self.settings.store
        self.store = ResilientExperimentStore(
            store or InMemoryExperimentStore(),
            timeout_seconds=store_settings.timeout_seconds,
            max_retries=store_settings.max_retries,
            backoff_ms=store_settings.backoff_ms,
            backoff_multiplier=store_settings.backoff_multiplier,
        )

        self.events = EventBus()
        self.event_log = RecentEventLog(limit=self.settings.recent_events_limit)
        self.events.subscribe(self.event_log)

        self.analyzer = StatisticalAnalyzer(
            default_minimum_sample_size=self.settings.default_minimum_sample_size,
            daily_traffic=self.settings.default_daily_traffic,
        )
        self.experiments = ExperimentManager(
            self.store,
            self.events,
            analyzer=self.analyzer,
            results_cache_ttl_seconds=self.settings.results_cache_ttl_seconds,
            results_cache_size=self.settings.results_cache_size,
        )
        self.monitoring = MonitoringLoop(
            self.store, self.analyzer, self.events, self.settings.monitoring
        )

        autonomous = self.settings.autonomous
        self.opportunities = OpportunityAnalyzer(
            thresholds=autonomous.thresholds,
            events=self.events,
            cache_seconds=autonomous.analysis_cache_seconds,
        )
        self.hypotheses = HypothesisGenerator(
            weights=autonomous.priority_weights,
            enabled_categories=autonomous.enabled_categories,
            events=self.events,
        )
        self.builder = ExperimentBuilder(self.analyzer, autonomous)

    async def start(self) -> None:
        """Start background work: the monitoring scheduler when enabled."""
        if self.settings.monitoring.enabled:
            await self.monitoring.start()
        logger.info("service_started", monitoring=self.settings.monitoring.enabled)

    async def stop(self) -> None:
        """Stop background work."""
        if self.monitoring.running:
            await self.monitoring.stop()
        logger.info("service_stopped")

    async def create_from_hypothesis(
        self,
        hypothesis: TestHypothesis,
        traffic_split: Optional[list[float]] = None,
        owner: Optional[str] = None,
    ) -> Experiment:
        """Build a draft experiment from a hypothesis and store it.

        Raises:
            ValidationError: If the hypothesis has no proposed changes or the
                built experiment is invalid
        """
        experiment = self.builder.build_experiment(hypothesis, traffic_split, owner)
        stored = await self.experiments.store_experiment(experiment)
        await self.events.emit(
            EventType.TEST_GENERATED,
            stored.id,
            hypothesis_id=hypothesis.id,
            variants=len(stored.variants),
            priority=hypothesis.priority,
        )
        return stored

    async def auto_generate(
        self, signals: list[PageSignals], max_experiments: int = 3
    ) -> AutoGenerateReport:
        """Run the whole autonomous pipeline over a batch of signals.

        Opportunities are processed in ranking order until ``max_experiments``
        drafts exist. Opportunities whose hypothesis proposes no changes are
        reported as skipped.

        Args:
            signals: Element-level page signals
            max_experiments: Maximum number of draft experiments to create

        Returns:
            AutoGenerateReport with everything produced along the way
        """
        report = AutoGenerateReport()
        report.opportunities = await self.opportunities.analyze(signals)

        for opportunity in report.opportunities:
            if len(report.experiments) >= max_experiments:
                break

            hypothesis = await self.hypotheses.generate_hypothesis(opportunity)
            report.hypotheses.append(hypothesis)
            if not hypothesis.proposed_changes:
                report.skipped.append(
                    SkippedOpportunity(
                        opportunity_id=opportunity.id,
                        reason=f"Category '{hypothesis.category.value}' is disabled",
                    )
                )
                continue

            report.experiments.append(await self.create_from_hypothesis(hypothesis))

        logger.info(
            "auto_generate_completed",
            opportunities=len(report.opportunities),
            experiments=len(report.experiments),
            skipped=len(report.skipped),
        )
        return report
