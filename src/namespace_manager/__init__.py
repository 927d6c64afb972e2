"""
Broker Namespace Manager - rotating RabbitMQ credentials for tenants.

This package issues and maintains per-tenant broker credentials with:
- Idempotent namespace claims
- Scheduled rotation between two broker identities
- Expiry of namespaces past their lifetime
- Reconciliation of queues, exchanges and connections against the registry
"""

__version__ = "0.1.0"
