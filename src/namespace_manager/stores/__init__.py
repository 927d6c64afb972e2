"""
Record stores for namespaces and queue states.

``build_stores`` picks the backend configured in settings.
"""

from ..errors import ConfigurationError
from ..models.namespace import Namespace, ResourceState
from ..settings import Settings
from .base import RecordStore, ScanPage
from .kubernetes import KubernetesStore
from .memory import MemoryStore


def build_stores(
    settings: Settings,
) -> tuple[RecordStore[Namespace], RecordStore[ResourceState]]:
    """Create the namespace store and the resource-state store."""
    backend = settings.store_backend.lower()
    if backend == "memory":
        return (
            MemoryStore(Namespace, settings.namespace_table_name),
            MemoryStore(ResourceState, settings.resource_state_table_name),
        )
    if backend == "kubernetes":
        from kubernetes import config

        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        return (
            KubernetesStore(
                Namespace, settings.namespace_table_name, settings.store_namespace
            ),
            KubernetesStore(
                ResourceState,
                settings.resource_state_table_name,
                settings.store_namespace,
            ),
        )
    raise ConfigurationError(
        f"Unknown store backend '{settings.store_backend}'",
        user_action="Set STORE_BACKEND to 'memory' or 'kubernetes'",
    )


__all__ = [
    "KubernetesStore",
    "MemoryStore",
    "RecordStore",
    "ScanPage",
    "build_stores",
]
