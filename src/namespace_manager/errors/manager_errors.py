"""
Namespace manager error hierarchy.

Errors fall into four categories, exposed as ``ManagerError.category``:

- ``validation``: the caller sent something unusable; nothing was changed
- ``configuration``: the deployment is misconfigured
- ``external``: the broker or the notification service failed
- ``store``: the record store failed or a conditional write lost a race

Sweeps use ``retryable`` to tell transient faults (logged, retried on the
next scheduled run) from permanent ones.
"""


class ManagerError(Exception):
    """Base class for namespace manager errors."""

    category = "internal"
    default_retryable = True
    default_action: str | None = None

    def __init__(
        self,
        message: str,
        retryable: bool | None = None,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.retryable = self.default_retryable if retryable is None else retryable
        self.user_action = user_action or self.default_action
        self.cause = cause

    def __str__(self) -> str:
        text = super().__str__()
        if not self.user_action:
            return text
        return f"{text}\nAction required: {self.user_action}"


class ValidationError(ManagerError):
    """Caller-supplied input was rejected."""

    category = "validation"
    default_retryable = False
    default_action = "Check the request and fix validation errors"

    def __init__(
        self, message: str, field: str | None = None, user_action: str | None = None
    ):
        if field:
            message = f"Validation error in field '{field}': {message}"
        super().__init__(message, user_action=user_action)
        self.field = field


class InvalidNamespaceError(ValidationError):
    """A namespace name breaks the naming rules."""

    def __init__(self, namespace: str, prefix: str = ""):
        rules = "at most 64 characters from [A-Za-z0-9_-]"
        if prefix:
            rules += f', starting with "{prefix}"'
        super().__init__(
            f"Invalid namespace '{namespace}'",
            field="namespace",
            user_action=f"Namespaces must be {rules}",
        )
        self.namespace = namespace
        self.prefix = prefix


class ConfigurationError(ManagerError):
    category = "configuration"
    default_retryable = False
    default_action = "Review and correct configuration"


class ExternalServiceError(ManagerError):
    """A call to the broker or the notification service failed.

    ``status_code`` is None when no HTTP response arrived at all.
    """

    category = "external"
    service = "external service"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool | None = None,
        user_action: str | None = None,
    ):
        if status_code:
            message = f"HTTP {status_code}: {message}"
            # 4xx responses are not retryable
            if retryable is None and 400 <= status_code < 500:
                retryable = False
        super().__init__(
            f"{self.service}: {message}",
            retryable=retryable,
            user_action=user_action,
        )
        self.status_code = status_code


class BrokerAPIError(ExternalServiceError):
    """The RabbitMQ management API returned an error or was unreachable."""

    service = "RabbitMQ management API"
    default_action = "Check broker status and management credentials"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.response_body = response_body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class NotificationError(ExternalServiceError):
    """A tenant notification could not be delivered. Never retried."""

    service = "Notification service"
    default_retryable = False
    default_action = "Check notification service status and token"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code, retryable=False)


class StoreError(ManagerError):
    category = "store"
    default_action = "Check record store availability"


class EntityAlreadyExistsError(StoreError):
    """Create was called for a key that is already stored."""

    default_retryable = False

    def __init__(self, key: str):
        super().__init__(f"Record '{key}' already exists")
        self.key = key


class EntityNotFoundError(StoreError):
    """Modify was called for a key that is not stored."""

    default_retryable = False

    def __init__(self, key: str):
        super().__init__(f"Record '{key}' not found")
        self.key = key


class ModifyConflictError(StoreError):
    """Every attempt of a conditional modify lost to a concurrent writer."""

    default_action = "Check for overlapping job runs"

    def __init__(self, key: str, attempts: int):
        super().__init__(
            f"Record '{key}' changed concurrently {attempts} times in a row"
        )
        self.key = key
        self.attempts = attempts
