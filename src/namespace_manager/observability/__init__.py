"""
Observability utilities for the namespace manager.

This module provides metrics, tracing and structured logging for the
scheduled jobs.
"""

from .logging import JobLogger, setup_structured_logging
from .metrics import get_metrics_registry, push_metrics, track_job
from .tracing import setup_tracing, shutdown_tracing, traced

__all__ = [
    "JobLogger",
    "get_metrics_registry",
    "push_metrics",
    "setup_structured_logging",
    "setup_tracing",
    "shutdown_tracing",
    "traced",
    "track_job",
]
