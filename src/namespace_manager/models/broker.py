"""
Pydantic representations of RabbitMQ management API objects.

Only the fields the monitor needs are declared; everything else the API
returns is ignored.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator


class QueueInfo(BaseModel):
    name: str
    vhost: str = "/"
    # Missing until the broker has collected stats for a new queue
    messages: int = 0

    @field_validator("messages", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return 0 if value is None else value


class ExchangeInfo(BaseModel):
    name: str
    vhost: str = "/"


class ConnectionInfo(BaseModel):
    """A live AMQP connection."""

    name: str = Field(..., description="Connection name, used to terminate it")
    user: str = Field("", description="Username the connection authenticated as")
    vhost: str = "/"
    connected_at: datetime | None = Field(
        None, description="When the connection was opened"
    )

    @field_validator("connected_at", mode="before")
    @classmethod
    def _from_epoch_millis(cls, value):
        if isinstance(value, int | float):
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        return value

    @field_validator("connected_at")
    @classmethod
    def _connected_at_is_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
