"""
Utils package - helper modules for the namespace manager.

Contains helper modules for:
- RabbitMQ management API interactions
- Tenant notification delivery
- Namespace and resource naming rules
- Bounded concurrency for sweeps
"""

from namespace_manager.utils.naming import (
    is_namespace_valid,
    namespace_from_resource,
    namespace_from_username,
    validate_namespace,
)

__all__ = [
    "is_namespace_valid",
    "validate_namespace",
    "namespace_from_resource",
    "namespace_from_username",
]
