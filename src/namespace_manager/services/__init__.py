"""
Service layer for the namespace manager.

This module provides the credential lifecycle manager and the broker
reconciliation sweep, separated from the job entry points.
"""

from .lifecycle import NamespaceLifecycleManager
from .monitor import BrokerMonitor, classify_queue

__all__ = [
    "BrokerMonitor",
    "NamespaceLifecycleManager",
    "classify_queue",
]
