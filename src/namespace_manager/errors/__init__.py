"""
Error handling module for the namespace manager.

This module provides an error hierarchy that separates caller input errors,
expected store conflicts and broker or notification faults.
"""

from .manager_errors import (
    BrokerAPIError,
    ConfigurationError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ExternalServiceError,
    InvalidNamespaceError,
    ManagerError,
    ModifyConflictError,
    NotificationError,
    StoreError,
    ValidationError,
)

__all__ = [
    "ManagerError",
    "ValidationError",
    "InvalidNamespaceError",
    "ConfigurationError",
    "ExternalServiceError",
    "BrokerAPIError",
    "NotificationError",
    "StoreError",
    "EntityAlreadyExistsError",
    "EntityNotFoundError",
    "ModifyConflictError",
]
