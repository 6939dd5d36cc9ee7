"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from jobqueue.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_PENDING,
    METRIC_LOCKS_ACQUIRED,
    METRIC_LOCKS_CLEARED,
    METRIC_LOCKS_CONTENDED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Pending jobs
    - Job enqueues and completions by outcome
    - Job execution duration
    - Lock acquisition, contention, and cleanup
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_pending = Gauge(
            METRIC_JOBS_PENDING,
            "Number of jobs not yet permanently failed",
            registry=self._registry,
        )

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["job_type"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of job runs by outcome",
            ["outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["outcome"],
            buckets=(0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 3600.0, 14400.0),
            registry=self._registry,
        )

        self.locks_acquired = Counter(
            METRIC_LOCKS_ACQUIRED,
            "Total number of job locks acquired or renewed",
            ["worker_id"],
            registry=self._registry,
        )

        self.locks_contended = Counter(
            METRIC_LOCKS_CONTENDED,
            "Total number of lock attempts lost to another worker",
            ["worker_id"],
            registry=self._registry,
        )

        self.locks_cleared = Counter(
            METRIC_LOCKS_CLEARED,
            "Total number of locks released on worker shutdown",
            ["worker_id"],
            registry=self._registry,
        )

    def record_job_enqueued(self, job_type: str) -> None:
        """Record a job enqueue."""
        self.jobs_enqueued.labels(job_type=job_type).inc()

    def record_job_completed(self, outcome: str, duration_seconds: float) -> None:
        """Record a finished job run."""
        self.jobs_completed.labels(outcome=outcome).inc()
        self.job_duration.labels(outcome=outcome).observe(duration_seconds)

    def record_lock_acquired(self, worker_id: str) -> None:
        self.locks_acquired.labels(worker_id=worker_id).inc()

    def record_lock_contended(self, worker_id: str) -> None:
        self.locks_contended.labels(worker_id=worker_id).inc()

    def record_locks_cleared(self, worker_id: str, count: int) -> None:
        self.locks_cleared.labels(worker_id=worker_id).inc(count)

    def update_jobs_pending(self, count: int) -> None:
        self.jobs_pending.set(count)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
