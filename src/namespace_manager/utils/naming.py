"""
Naming rules for namespaces and the broker resources they own.

Ownership of queues, exchanges and connections is inferred purely from their
names, and those names decide what the monitor deletes. Every parser here
returns ``None`` for anything outside the tenant naming scheme, and callers
must leave such resources alone.

Resource names have the form ``<resource prefix><namespace>/<rest>`` and
broker usernames the form ``<username prefix><namespace>-<A|B>``. When a
required namespace prefix is configured, ``<namespace>`` itself starts with it.
"""

import logging
import re

from ..constants import (
    IDENTITY_SLOT_SEPARATOR,
    NAMESPACE_MAX_LENGTH,
    NAMESPACE_PATTERN,
    RESOURCE_PATH_SEPARATOR,
)
from ..errors import InvalidNamespaceError
from ..models.namespace import RotationState

logger = logging.getLogger(__name__)

_NAMESPACE_RE = re.compile(NAMESPACE_PATTERN)


def is_namespace_valid(namespace: str, prefix: str = "") -> bool:
    """
    Check whether this is a valid namespace name.

    Args:
        namespace: Candidate namespace name
        prefix: Required namespace prefix, or empty for none

    Returns:
        True if the name may be claimed
    """
    if not namespace or len(namespace) > NAMESPACE_MAX_LENGTH:
        return False
    if not _NAMESPACE_RE.fullmatch(namespace):
        return False
    return not (prefix and not namespace.startswith(prefix))


def validate_namespace(namespace: str, prefix: str = "") -> None:
    """
    Reject an invalid namespace name.

    Raises:
        InvalidNamespaceError: If the name fails the syntax or prefix rules
    """
    if not is_namespace_valid(namespace, prefix):
        logger.debug(f"Rejected invalid namespace name: {namespace!r}")
        raise InvalidNamespaceError(namespace, prefix)


def render_permission(template: str, namespace: str) -> str:
    """
    Substitute the namespace into a permission pattern template.

    Both ``{namespace}`` and ``{{namespace}}`` placeholders are accepted.
    """
    return template.replace("{{namespace}}", namespace).replace(
        "{namespace}", namespace
    )


def namespace_from_resource(
    resource_name: str, resource_prefix: str, namespace_prefix: str = ""
) -> str | None:
    """
    Derive the owning namespace of a queue or exchange.

    Args:
        resource_name: Broker queue or exchange name
        resource_prefix: Tenant resource prefix, e.g. ``queue/``
        namespace_prefix: Required namespace prefix

    Returns:
        The namespace, or None if the name is not a tenant resource
    """
    if not resource_prefix:
        # Without a resource prefix every name would be claimed by some tenant
        return None
    if not resource_name.startswith(resource_prefix + namespace_prefix):
        return None

    remainder = resource_name[len(resource_prefix) :]
    namespace, separator, _ = remainder.partition(RESOURCE_PATH_SEPARATOR)
    if not separator:
        return None
    if not is_namespace_valid(namespace, namespace_prefix):
        return None
    return namespace


def namespace_from_username(
    username: str, username_prefix: str = "", namespace_prefix: str = ""
) -> str | None:
    """
    Derive the owning namespace of a broker identity.

    Returns:
        The namespace, or None if the user is not a namespace identity
    """
    if not username.startswith(username_prefix + namespace_prefix):
        return None

    remainder = username[len(username_prefix) :]
    namespace, separator, slot = remainder.rpartition(IDENTITY_SLOT_SEPARATOR)
    if not separator or slot not in {state.value for state in RotationState}:
        return None
    if not is_namespace_valid(namespace, namespace_prefix):
        return None
    return namespace
