"""Periodic monitoring of running experiments.

The monitoring loop recomputes significance for every running experiment on
an APScheduler interval job and publishes advisory events for early winners
and underperforming variants. It never changes experiment status. Only the
instance holding the monitor lease in the store runs a cycle.
"""

import uuid
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]
from pydantic import Field

from liftforge.config import MonitoringSettings
from liftforge.experiments.analysis import StatisticalAnalyzer
from liftforge.experiments.enums import EventType, ExperimentStatus
from liftforge.experiments.errors import ExperimentError
from liftforge.experiments.events import EventBus
from liftforge.experiments.models import CamelModel, Experiment, new_id, utcnow
from liftforge.experiments.storage.repository import ExperimentStore
from liftforge.observability.logging import get_logger
from liftforge.observability.metrics import get_metrics_collector

logger = get_logger(__name__)

LEASE_NAME = "liftforge-monitoring"
JOB_ID = "liftforge-monitoring-cycle"

EARLY_WINNER = "early_winner"
UNDERPERFORMING = "underperforming_variant"


class MonitoringFlag(CamelModel):
    """An advisory finding about one variant."""

    kind: str
    experiment_id: str
    variant_id: str
    variant_name: str
    improvement: float
    confidence: float
    visitors: int


class MonitoringError(CamelModel):
    """A failure while checking one experiment."""

    experiment_id: Optional[str] = None
    error: str


class MonitoringReport(CamelModel):
    """Summary of one monitoring cycle."""

    cycle_id: str = Field(default_factory=lambda: new_id("cycle"))
    skipped: bool = False
    experiments_checked: int = 0
    flags: list[MonitoringFlag] = Field(default_factory=list)
    errors: list[MonitoringError] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None


class MonitoringLoop:
    """Scheduled checker for early winners and underperforming variants.

    Example:
        >>> loop = MonitoringLoop(store, analyzer, events, MonitoringSettings())
        >>> report = await loop.run_cycle()
    """

    def __init__(
        self,
        store: ExperimentStore,
        analyzer: StatisticalAnalyzer,
        events: EventBus,
        settings: MonitoringSettings,
        instance_id: Optional[str] = None,
    ) -> None:
        """Initialize the monitoring loop.

        Args:
            store: Store holding the experiments to check
            analyzer: Analyzer used to recompute significance
            events: Bus receiving advisory events
            settings: Cadence and thresholds
            instance_id: Lease holder name, random when omitted
        """
        self.store = store
        self.analyzer = analyzer
        self.events = events
        self.settings = settings
        self.instance_id = instance_id or f"monitor-{uuid.uuid4().hex[:8]}"
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.last_report: Optional[MonitoringReport] = None
        self._flagged: set[tuple[str, str, str]] = set()

    @property
    def running(self) -> bool:
        """Whether the scheduler is running."""
        return bool(self.scheduler.running)

    async def start(self) -> None:
        """Schedule the monitoring job and start the scheduler."""
        self.scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.settings.interval_seconds),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "monitoring_started",
            instance_id=self.instance_id,
            interval_seconds=self.settings.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the scheduler and release the monitor lease."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        try:
            await self.store.release_lease(LEASE_NAME, self.instance_id)
        except ExperimentError as e:
            logger.warning("monitoring_lease_release_failed", error=e.message)
        logger.info("monitoring_stopped", instance_id=self.instance_id)

    async def run_cycle(self) -> MonitoringReport:
        """Check every running experiment once.

        A failure on one experiment is reported as a ``monitoring_error`` event
        and the cycle continues with the next experiment.

        Returns:
            MonitoringReport describing what was checked and flagged
        """
        report = MonitoringReport()
        metrics = get_metrics_collector()

        try:
            acquired = await self.store.acquire_lease(
                LEASE_NAME, self.instance_id, self.settings.lease_ttl
            )
            experiments = (
                await self.store.list_experiments(ExperimentStatus.RUNNING) if acquired else []
            )
        except ExperimentError as e:
            logger.error("monitoring_cycle_failed", error=e.message)
            report.errors.append(MonitoringError(error=e.message))
            await self.events.emit(EventType.MONITORING_ERROR, None, error=e.message)
            return self._finish(report, "failed")

        if not acquired:
            logger.info("monitoring_cycle_skipped", instance_id=self.instance_id)
            report.skipped = True
            return self._finish(report, "skipped")

        running_ids = {experiment.id for experiment in experiments}
        self._flagged = {key for key in self._flagged if key[0] in running_ids}

        for experiment in experiments:
            try:
                flags = self.check_experiment(experiment)
            except Exception as e:
                logger.exception("monitoring_experiment_failed", experiment_id=experiment.id)
                report.errors.append(MonitoringError(experiment_id=experiment.id, error=str(e)))
                await self.events.emit(
                    EventType.MONITORING_ERROR,
                    experiment.id,
                    test_id=experiment.id,
                    error=str(e),
                )
                continue

            report.experiments_checked += 1
            for flag in flags:
                report.flags.append(flag)
                metrics.record_monitoring_flag(flag.kind)
                event_type = (
                    EventType.EARLY_WINNER_DETECTED
                    if flag.kind == EARLY_WINNER
                    else EventType.UNDERPERFORMING_VARIANT_DETECTED
                )
                await self.events.emit(
                    event_type, experiment.id, **flag.model_dump(exclude={"experiment_id"})
                )

        return self._finish(report, "completed")

    def check_experiment(self, experiment: Experiment) -> list[MonitoringFlag]:
        """Find new early winners and underperformers in one experiment.

        Flags already raised for the same experiment, variant and kind are
        not raised again.
        """
        result = self.analyzer.analyze(experiment)
        primary = result.primary
        control = next((v for v in primary.variants if v.is_control), None)
        if control is None:
            return []

        threshold_pct = self.settings.underperformance_threshold * 100
        flags: list[MonitoringFlag] = []

        for row in primary.variants:
            if row.is_control:
                continue

            kind: Optional[str] = None
            if (
                row.meets_confidence_target
                and row.improvement > 0
                and row.visitors >= self.settings.early_winner_min_visitors
                and control.visitors >= self.settings.early_winner_min_visitors
            ):
                kind = EARLY_WINNER
            elif (
                row.meets_confidence_target
                and row.improvement <= -threshold_pct
                and row.visitors >= self.settings.underperformance_min_visitors
            ):
                kind = UNDERPERFORMING

            if kind is None or (experiment.id, row.variant_id, kind) in self._flagged:
                continue

            self._flagged.add((experiment.id, row.variant_id, kind))
            logger.info(
                "monitoring_flag_raised",
                experiment_id=experiment.id,
                variant_id=row.variant_id,
                kind=kind,
                confidence=round(row.confidence, 2),
            )
            flags.append(
                MonitoringFlag(
                    kind=kind,
                    experiment_id=experiment.id,
                    variant_id=row.variant_id,
                    variant_name=row.variant_name,
                    improvement=row.improvement,
                    confidence=row.confidence,
                    visitors=row.visitors,
                )
            )
        return flags

    def _finish(self, report: MonitoringReport, status: str) -> MonitoringReport:
        report.finished_at = utcnow()
        self.last_report = report
        get_metrics_collector().record_monitoring_cycle(status)
        logger.info(
            "monitoring_cycle_finished",
            status=status,
            experiments_checked=report.experiments_checked,
            flags=len(report.flags),
            errors=len(report.errors),
        )
        return report
