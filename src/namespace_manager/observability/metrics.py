"""
Prometheus metrics for the namespace manager.

Every job is a short-lived batch process, so metrics are collected in a
dedicated registry and pushed to a Pushgateway at the end of the run
instead of being scraped.
"""

import logging
import time
from contextlib import asynccontextmanager

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    push_to_gateway,
)

from ..settings import Settings

logger = logging.getLogger(__name__)

# Global metrics registry
_metrics_registry = CollectorRegistry()

# Lifecycle metrics
NAMESPACE_CLAIMS_TOTAL = Counter(
    "namespace_manager_claims_total",
    "Total number of namespace claims",
    ["result"],  # created, reclaimed, updated
    registry=_metrics_registry,
)

NAMESPACE_ROTATIONS_TOTAL = Counter(
    "namespace_manager_rotations_total",
    "Total number of credential rotations",
    [],
    registry=_metrics_registry,
)

NAMESPACE_EXPIRATIONS_TOTAL = Counter(
    "namespace_manager_expirations_total",
    "Total number of expired namespaces removed",
    [],
    registry=_metrics_registry,
)

OPERATION_ERRORS_TOTAL = Counter(
    "namespace_manager_operation_errors_total",
    "Total number of per-record failures",
    ["operation", "error_type"],
    registry=_metrics_registry,
)

# Monitor metrics
CONNECTIONS_TERMINATED_TOTAL = Counter(
    "namespace_manager_connections_terminated_total",
    "Total number of tenant connections terminated",
    ["reason"],
    registry=_metrics_registry,
)

RESOURCES_DELETED_TOTAL = Counter(
    "namespace_manager_resources_deleted_total",
    "Total number of broker queues and exchanges deleted",
    ["resource_type", "reason"],  # reason: orphaned, over_threshold
    registry=_metrics_registry,
)

QUEUE_STATE_TRANSITIONS_TOTAL = Counter(
    "namespace_manager_queue_state_transitions_total",
    "Total number of queue alert state transitions",
    ["state"],
    registry=_metrics_registry,
)

NOTIFICATIONS_TOTAL = Counter(
    "namespace_manager_notifications_total",
    "Total number of tenant notifications",
    ["method", "result"],  # result: sent, failed, skipped
    registry=_metrics_registry,
)

RESOURCE_STATES_COLLECTED_TOTAL = Counter(
    "namespace_manager_resource_states_collected_total",
    "Total number of stale queue state records removed",
    [],
    registry=_metrics_registry,
)

ACTIVE_NAMESPACES = Gauge(
    "namespace_manager_active_namespaces",
    "Number of namespaces seen by the last monitor sweep",
    [],
    registry=_metrics_registry,
)

# Job metrics
JOB_DURATION = Histogram(
    "namespace_manager_job_duration_seconds",
    "Time spent running a job",
    ["job", "result"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0],
    registry=_metrics_registry,
)

JOB_LAST_SUCCESS_TIMESTAMP = Gauge(
    "namespace_manager_job_last_success_timestamp_seconds",
    "Unix timestamp of the last job run without failures",
    ["job"],
    registry=_metrics_registry,
)


def get_metrics_registry() -> CollectorRegistry:
    """Get the global metrics registry."""
    return _metrics_registry


def record_failure(operation: str, error: BaseException) -> None:
    OPERATION_ERRORS_TOTAL.labels(
        operation=operation, error_type=type(error).__name__
    ).inc()


@asynccontextmanager
async def track_job(job: str):
    """
    Context manager to time a job run.

    The body may set ``tracker["failed"] = True`` to record a run that
    finished with per-record failures.
    """
    start_time = time.time()
    tracker = {"failed": False}
    result = "error"
    try:
        yield tracker
        result = "partial" if tracker["failed"] else "success"
    finally:
        JOB_DURATION.labels(job=job, result=result).observe(time.time() - start_time)
        if result == "success":
            JOB_LAST_SUCCESS_TIMESTAMP.labels(job=job).set(time.time())


def push_metrics(settings: Settings, job: str) -> bool:
    """
    Push the registry to the configured Pushgateway.

    Returns:
        True if metrics were pushed, False if no gateway is configured
        or the push failed
    """
    if not settings.pushgateway_url:
        return False
    try:
        push_to_gateway(
            settings.pushgateway_url,
            job=f"namespace-manager-{job}",
            registry=_metrics_registry,
        )
    except OSError as e:
        # Best effort
        logger.warning(f"Failed to push metrics to {settings.pushgateway_url}: {e}")
        return False
    return True
