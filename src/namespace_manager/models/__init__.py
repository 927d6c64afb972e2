"""Data models for namespaces, queue states and broker resources."""

from .broker import ConnectionInfo, ExchangeInfo, QueueInfo
from .namespace import (
    Contact,
    ContactMethod,
    IdentityPair,
    IdentitySlot,
    Namespace,
    NamespaceListResponse,
    NamespaceResponse,
    QueueState,
    ResourceState,
    RotationState,
    ensure_utc,
)
from .results import BatchResult, MonitorResult

__all__ = [
    "BatchResult",
    "ConnectionInfo",
    "Contact",
    "ContactMethod",
    "ExchangeInfo",
    "IdentityPair",
    "IdentitySlot",
    "MonitorResult",
    "Namespace",
    "NamespaceListResponse",
    "NamespaceResponse",
    "QueueInfo",
    "QueueState",
    "ResourceState",
    "RotationState",
    "ensure_utc",
]
