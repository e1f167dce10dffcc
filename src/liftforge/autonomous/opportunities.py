"""Opportunity discovery from page signals.

Each element's signals are compared with configurable benchmarks. Elements
with a gap become optimization opportunities, ranked by expected impact and
by how much the signals can be trusted.
"""

import asyncio
import hashlib
import json
from typing import Optional

from cachetools import TTLCache

from liftforge.autonomous.models import (
    OptimizationOpportunity,
    PageSignals,
    Severity,
    SupportingData,
)
from liftforge.config import AnalyzerThresholds
from liftforge.experiments.enums import EventType
from liftforge.experiments.events import EventBus
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)

IMPACT_WEIGHT = 0.5
CONFIDENCE_WEIGHT = 0.3

GAP_WEIGHTS = {
    "conversion": 0.4,
    "click_through": 0.25,
    "bounce": 0.2,
    "engagement": 0.15,
}

SEGMENT_SPREAD_WEIGHT = 0.1

SEVERITY_CUTOFFS = [
    (0.6, Severity.CRITICAL),
    (0.4, Severity.HIGH),
    (0.2, Severity.MEDIUM),
]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def ranking_score(potential_impact: float, confidence_score: float) -> float:
    """Score used to order opportunities, highest first."""
    return potential_impact * IMPACT_WEIGHT + confidence_score * CONFIDENCE_WEIGHT


class OpportunityAnalyzer:
    """Finds and ranks optimization opportunities.

    Concurrent calls with identical signals share one computation, and a
    finished ranking is reused for ``cache_seconds``.
    """

    def __init__(
        self,
        thresholds: Optional[AnalyzerThresholds] = None,
        events: Optional[EventBus] = None,
        cache_seconds: float = 10.0,
    ) -> None:
        """Initialize the analyzer.

        Args:
            thresholds: Benchmarks signals are compared against
            events: Optional bus receiving ``analysis_completed`` events
            cache_seconds: How long a finished ranking is reused, 0 disables reuse
        """
        self.thresholds = thresholds or AnalyzerThresholds()
        self.events = events
        self.latest: list[OptimizationOpportunity] = []
        self._cache: Optional[TTLCache] = (
            TTLCache(maxsize=64, ttl=cache_seconds) if cache_seconds > 0 else None
        )
        self._inflight: dict[str, asyncio.Task] = {}

    async def analyze(self, signals: list[PageSignals]) -> list[OptimizationOpportunity]:
        """Rank the opportunities found in a batch of signals.

        Args:
            signals: Element-level signals

        Returns:
            Opportunities ordered by ranking score, highest first
        """
        key = self._digest(signals)

        if self._cache is not None and key in self._cache:
            return list(self._cache[key])

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, signals))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            logger.debug("opportunity_analysis_joined", key=key[:12])

        return list(await asyncio.shield(task))

    async def _run(self, key: str, signals: list[PageSignals]) -> list[OptimizationOpportunity]:
        opportunities = await asyncio.to_thread(self.rank, signals)
        if self._cache is not None:
            self._cache[key] = opportunities
        self.latest = opportunities

        logger.info(
            "opportunity_analysis_completed",
            signals=len(signals),
            opportunities=len(opportunities),
        )
        if self.events is not None:
            await self.events.emit(
                EventType.ANALYSIS_COMPLETED,
                None,
                opportunities=len(opportunities),
                top=[o.id for o in opportunities[:5]],
            )
        return opportunities

    def rank(self, signals: list[PageSignals]) -> list[OptimizationOpportunity]:
        """Evaluate every signal and sort the resulting opportunities."""
        opportunities = [o for o in (self.evaluate(s) for s in signals) if o is not None]
        return sorted(opportunities, key=lambda o: (-o.score, o.page, o.element))

    def evaluate(self, signal: PageSignals) -> Optional[OptimizationOpportunity]:
        """Turn one element's signals into an opportunity, None if it meets every benchmark."""
        t = self.thresholds
        gaps = {
            "conversion": _clamp(
                (t.target_conversion_rate - signal.conversion_rate) / t.target_conversion_rate
            ),
            "click_through": _clamp(
                (t.target_click_through_rate - signal.click_through_rate)
                / t.target_click_through_rate
            ),
            "bounce": _clamp((signal.bounce_rate - t.max_bounce_rate) / (1 - t.max_bounce_rate)),
            "engagement": _clamp(
                (t.target_time_on_page - signal.time_on_page) / t.target_time_on_page
            ),
        }
        largest_gap, largest_value = max(gaps.items(), key=lambda item: item[1])
        if largest_value <= 0:
            return None

        spread = self._segment_spread(signal.segment_performance)
        potential_impact = _clamp(
            sum(GAP_WEIGHTS[name] * value for name, value in gaps.items())
            + SEGMENT_SPREAD_WEIGHT * spread
        )
        confidence_score = signal.visitors / (signal.visitors + t.confidence_half_visitors)
        severity = next(
            (level for cutoff, level in SEVERITY_CUTOFFS if largest_value >= cutoff),
            Severity.LOW,
        )

        return OptimizationOpportunity(
            page=signal.page,
            element=signal.element,
            issue=self._describe(largest_gap, signal),
            severity=severity,
            potential_impact=potential_impact,
            confidence_score=confidence_score,
            supporting_data=SupportingData(
                visitors=signal.visitors,
                conversion_rate=signal.conversion_rate,
                bounce_rate=signal.bounce_rate,
                time_on_page=signal.time_on_page,
                click_through_rate=signal.click_through_rate,
                revenue_per_visitor=signal.revenue_per_visitor,
            ),
            segment_performance=dict(signal.segment_performance),
            behavioral_patterns=list(signal.behavioral_patterns),
            score=ranking_score(potential_impact, confidence_score),
        )

    def _segment_spread(self, segments: dict[str, float]) -> float:
        if len(segments) < 2:
            return 0.0
        best = max(segments.values())
        if best <= 0:
            return 0.0
        return _clamp((best - min(segments.values())) / best)

    def _describe(self, gap: str, signal: PageSignals) -> str:
        t = self.thresholds
        if gap == "conversion":
            return (
                f"Conversion rate {signal.conversion_rate:.2%} is below the "
                f"{t.target_conversion_rate:.2%} benchmark"
            )
        if gap == "click_through":
            return (
                f"Click-through rate {signal.click_through_rate:.2%} is below the "
                f"{t.target_click_through_rate:.2%} benchmark"
            )
        if gap == "bounce":
            return (
                f"Bounce rate {signal.bounce_rate:.2%} exceeds the "
                f"{t.max_bounce_rate:.2%} benchmark"
            )
        return (
            f"Time on page {signal.time_on_page:.0f}s is below the "
            f"{t.target_time_on_page:.0f}s benchmark"
        )

    def _digest(self, signals: list[PageSignals]) -> str:
        payload = json.dumps([s.model_dump(mode="json") for s in signals], sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
