"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from jobworker.constants import (
    METRIC_HOOK_FAILURES,
    METRIC_JOB_DURATION,
    METRIC_JOBS_SETTLED,
    METRIC_MESSAGES_DEQUEUED,
    METRIC_POLL_CYCLES,
    METRIC_WORKER_RESTARTS,
    METRIC_WORKERS_RUNNING,
    JobOutcome,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the queue workers.

    Collects metrics for:
    - Messages dequeued and poll cycles per queue
    - Job settlement outcomes and execution duration
    - Processor hook failures
    - Worker restarts and running workers
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.messages_dequeued = Counter(
            METRIC_MESSAGES_DEQUEUED,
            "Total number of messages dequeued",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_settled = Counter(
            METRIC_JOBS_SETTLED,
            "Total number of deliveries settled, by outcome",
            ["queue", "job_type", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Processor execution duration in seconds",
            ["queue", "job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

        self.hook_failures = Counter(
            METRIC_HOOK_FAILURES,
            "Total number of failed on_success/on_error hooks",
            ["queue", "hook"],
            registry=self._registry,
        )

        self.poll_cycles = Counter(
            METRIC_POLL_CYCLES,
            "Total number of completed poll cycles",
            ["queue"],
            registry=self._registry,
        )

        self.worker_restarts = Counter(
            METRIC_WORKER_RESTARTS,
            "Total number of worker restarts attempted by the supervisor",
            ["queue"],
            registry=self._registry,
        )

        self.workers_running = Gauge(
            METRIC_WORKERS_RUNNING,
            "Whether the worker for a queue is running (1) or not (0)",
            ["queue"],
            registry=self._registry,
        )

    def record_dequeued(self, queue: str) -> None:
        """Record a dequeued message."""
        self.messages_dequeued.labels(queue=queue).inc()

    def record_settled(self, queue: str, job_type: str, outcome: JobOutcome) -> None:
        """Record how a delivery was settled."""
        self.jobs_settled.labels(queue=queue, job_type=job_type, outcome=outcome).inc()

    def record_job_duration(
        self,
        queue: str,
        job_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record processor execution time."""
        self.job_duration.labels(queue=queue, job_type=job_type, status=status).observe(
            duration_seconds
        )

    def record_hook_failure(self, queue: str, hook: str) -> None:
        """Record a failed processor hook."""
        self.hook_failures.labels(queue=queue, hook=hook).inc()

    def record_poll_cycle(self, queue: str) -> None:
        """Record a completed poll cycle."""
        self.poll_cycles.labels(queue=queue).inc()

    def record_restart(self, queue: str) -> None:
        """Record an automatic restart attempt."""
        self.worker_restarts.labels(queue=queue).inc()

    def set_worker_running(self, queue: str, running: bool) -> None:
        """Update the running flag of a worker."""
        self.workers_running.labels(queue=queue).set(1 if running else 0)


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, expose the default registry over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
