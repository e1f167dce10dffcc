"""Prometheus metrics collection for monitoring.

This module provides Prometheus metrics for tracking experiment lifecycle
transitions, traffic assignment, conversions, monitoring cycles and HTTP
requests.
"""

from typing import Optional

from prometheus_client import Counter, Histogram, generate_latest

experiment_transitions_total = Counter(
    "liftforge_experiment_transitions_total",
    "Total number of experiment lifecycle transitions",
    labelnames=["transition"],
)

participant_assignments_total = Counter(
    "liftforge_participant_assignments_total",
    "Total number of participant assignment requests",
    labelnames=["outcome"],
)

conversions_recorded_total = Counter(
    "liftforge_conversions_recorded_total",
    "Total number of conversion recording requests",
    labelnames=["goal_type", "outcome"],
)

monitoring_cycles_total = Counter(
    "liftforge_monitoring_cycles_total",
    "Total number of monitoring cycles",
    labelnames=["status"],
)

monitoring_flags_total = Counter(
    "liftforge_monitoring_flags_total",
    "Total number of advisory flags raised by the monitoring loop",
    labelnames=["kind"],
)

http_requests_total = Counter(
    "liftforge_http_requests_total",
    "Total number of HTTP requests",
    labelnames=["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "liftforge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


class MetricsCollector:
    """Collects and exposes Prometheus metrics."""

    def record_transition(self, transition: str) -> None:
        """Record a lifecycle transition (start, pause, resume, complete)."""
        experiment_transitions_total.labels(transition=transition).inc()

    def record_assignment(self, created: bool) -> None:
        """Record a participant assignment, new or returned from the store."""
        participant_assignments_total.labels(outcome="new" if created else "existing").inc()

    def record_conversion(self, goal_type: str, counted: bool) -> None:
        """Record a conversion request.

        Args:
            goal_type: Type of the goal converted on
            counted: Whether the request changed any counter
        """
        conversions_recorded_total.labels(
            goal_type=goal_type, outcome="counted" if counted else "duplicate"
        ).inc()

    def record_monitoring_cycle(self, status: str) -> None:
        """Record a monitoring cycle outcome (completed, skipped)."""
        monitoring_cycles_total.labels(status=status).inc()

    def record_monitoring_flag(self, kind: str) -> None:
        """Record an advisory flag raised by the monitoring loop."""
        monitoring_flags_total.labels(kind=kind).inc()

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float,
    ) -> None:
        """Record an HTTP request event.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Request endpoint path
            status_code: HTTP status code
            duration_seconds: Request duration in seconds

        Example:
            >>> collector = get_metrics_collector()
            >>> collector.record_http_request("GET", "/experiments", 200, 0.05)
        """
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration_seconds)

    def generate_metrics(self) -> bytes:
        """Generate Prometheus metrics in text exposition format."""
        return generate_latest()


_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide MetricsCollector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
