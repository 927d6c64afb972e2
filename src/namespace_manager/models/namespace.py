"""
Namespace and resource-state records.

A namespace owns two broker identities, ``<name>-A`` and ``<name>-B``. Exactly
one of them is active (holds the live password); the other is a locked standby
that becomes active on the next rotation. The slots are addressed through
``RotationState`` and ``IdentityPair`` rather than by building suffixes by hand.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import quote

from pydantic import BaseModel, Field, field_validator

from ..constants import IDENTITY_SLOT_SEPARATOR

if TYPE_CHECKING:
    from ..settings import Settings


class RotationState(StrEnum):
    """Which of the two identity slots is active."""

    A = "A"
    B = "B"

    @property
    def other(self) -> "RotationState":
        return RotationState.B if self is RotationState.A else RotationState.A


class IdentitySlot(NamedTuple):
    username: str
    slot: RotationState


class IdentityPair(NamedTuple):
    """The active and standby broker identities of a namespace."""

    active: IdentitySlot
    standby: IdentitySlot


class ContactMethod(StrEnum):
    EMAIL = "email"
    CHAT = "chat"
    ROUTED_MESSAGE = "routed-message"


class Contact(BaseModel):
    """Where to send notifications about a namespace's resources."""

    model_config = {"populate_by_name": True, "frozen": True}

    method: ContactMethod = Field(..., description="Delivery channel")
    address: str = Field(
        ...,
        min_length=1,
        description="Email address, chat room or routing key, depending on method",
    )


def ensure_utc(value: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware values pass through unchanged."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def identity_username(namespace: str, slot: RotationState, username_prefix: str) -> str:
    """Broker username of one identity slot of a namespace."""
    return f"{username_prefix}{namespace}{IDENTITY_SLOT_SEPARATOR}{slot.value}"


class Namespace(BaseModel):
    """
    One tenant credential allocation.

    ``etag`` is the store's version marker for conditional writes and is not
    part of the record's persisted content.
    """

    model_config = {"populate_by_name": True, "validate_assignment": True}

    namespace: str = Field(..., description="Namespace name, the primary key")
    password: str = Field(..., description="Password of the active identity")
    created: datetime = Field(..., description="When the namespace was first claimed")
    expires: datetime = Field(..., description="When the namespace is torn down")
    rotation_state: RotationState = Field(
        RotationState.A, description="Which identity slot is active"
    )
    next_rotation: datetime = Field(..., description="When the next rotation is due")
    contact: Contact | None = Field(None, description="Notification contact")
    etag: str | None = Field(None, exclude=True)

    @field_validator("created", "expires", "next_rotation")
    @classmethod
    def _timestamps_are_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def key(self) -> str:
        return self.namespace

    @property
    def reclaim_at(self) -> datetime:
        """When the holder should claim again to keep working credentials."""
        return min(self.expires, self.next_rotation)

    def username(self, slot: RotationState, settings: "Settings") -> str:
        return identity_username(self.namespace, slot, settings.username_prefix)

    def identities(self, settings: "Settings") -> IdentityPair:
        active = self.rotation_state
        return IdentityPair(
            active=IdentitySlot(self.username(active, settings), active),
            standby=IdentitySlot(self.username(active.other, settings), active.other),
        )

    def connection_string(self, settings: "Settings") -> str:
        """AMQP URL for the active identity."""
        username = quote(self.identities(settings).active.username, safe="")
        password = quote(self.password, safe="")
        vhost = quote(settings.virtual_host, safe="")
        return (
            f"{settings.amqp_scheme}://{username}:{password}"
            f"@{settings.amqp_hostname}:{settings.amqp_port}/{vhost}"
        )

    def to_public(
        self, settings: "Settings", include_password: bool = False
    ) -> "NamespaceResponse":
        return NamespaceResponse(
            namespace=self.namespace,
            username=self.identities(settings).active.username,
            password=self.password if include_password else None,
            connection_string=(
                self.connection_string(settings) if include_password else None
            ),
            created=self.created,
            expires=self.expires,
            reclaim_at=self.reclaim_at,
            contact=self.contact,
        )


class NamespaceResponse(BaseModel):
    """Public view of a namespace as returned to API callers."""

    namespace: str
    username: str
    password: str | None = None
    connection_string: str | None = None
    created: datetime
    expires: datetime
    reclaim_at: datetime
    contact: Contact | None = None


class NamespaceListResponse(BaseModel):
    namespaces: list[NamespaceResponse] = Field(default_factory=list)
    continuation_token: str | None = None


class QueueState(StrEnum):
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


class ResourceState(BaseModel):
    """Last observed alert state of a broker queue."""

    model_config = {"populate_by_name": True, "validate_assignment": True}

    name: str = Field(..., description="Queue name, the primary key")
    state: QueueState = Field(..., description="Last classification")
    updated: datetime = Field(..., description="Time of the last state transition")
    etag: str | None = Field(None, exclude=True)

    @field_validator("updated")
    @classmethod
    def _updated_is_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def key(self) -> str:
        return self.name
