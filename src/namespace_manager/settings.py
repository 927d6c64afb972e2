"""Centralized namespace manager settings using pydantic-settings.

This module provides a single source of truth for all configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from datetime import timedelta

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Namespace manager configuration loaded from environment variables.

    All settings have sensible defaults for local development. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for job tracing",
    )

    # RabbitMQ management API
    rabbit_management_url: str = Field(
        default="http://localhost:15672/api/",
        validation_alias="RABBIT_MANAGEMENT_URL",
        description="Base URL of the RabbitMQ management API",
    )
    rabbit_username: str = Field(
        default="guest",
        validation_alias="RABBIT_USERNAME",
        description="Management API username",
    )
    rabbit_password: str = Field(
        default="guest",
        validation_alias="RABBIT_PASSWORD",
        description="Management API password",
    )
    rabbit_timeout_seconds: int = Field(
        default=30,
        validation_alias="RABBIT_TIMEOUT_SECONDS",
        description="Request timeout for management API calls",
    )
    virtual_host: str = Field(
        default="/",
        validation_alias="RABBIT_VHOST",
        description="Virtual host that tenant resources live in",
    )

    # AMQP endpoint handed out to tenants
    amqp_hostname: str = Field(
        default="localhost",
        validation_alias="AMQP_HOSTNAME",
        description="Hostname used in tenant connection strings",
    )
    amqp_port: int = Field(
        default=5671,
        validation_alias="AMQP_PORT",
        description="Port used in tenant connection strings",
    )
    amqp_scheme: str = Field(
        default="amqps",
        validation_alias="AMQP_SCHEME",
        description="URL scheme used in tenant connection strings",
    )

    # Naming conventions
    namespace_prefix: str = Field(
        default="",
        validation_alias="NAMESPACE_PREFIX",
        description="Prefix every claimed namespace must start with (empty = none)",
    )
    username_prefix: str = Field(
        default="",
        validation_alias="USERNAME_PREFIX",
        description="Prefix prepended to broker usernames",
    )
    queue_prefix: str = Field(
        default="queue/",
        validation_alias="QUEUE_PREFIX",
        description="Prefix of tenant queue names, followed by the namespace",
    )
    exchange_prefix: str = Field(
        default="exchange/",
        validation_alias="EXCHANGE_PREFIX",
        description="Prefix of tenant exchange names, followed by the namespace",
    )

    # Broker users
    user_tags: str = Field(
        default="",
        validation_alias="USER_TAGS",
        description="Comma-separated RabbitMQ tags given to namespace users",
    )
    user_configure_permission: str = Field(
        default="^(queue/{namespace}/.*|exchange/{namespace}/.*)",
        validation_alias="USER_CONFIGURE_PERMISSION",
        description="Configure permission pattern with a {namespace} placeholder",
    )
    user_write_permission: str = Field(
        default="^(queue/{namespace}/.*|exchange/{namespace}/.*)",
        validation_alias="USER_WRITE_PERMISSION",
        description="Write permission pattern with a {namespace} placeholder",
    )
    user_read_permission: str = Field(
        default="^(queue/{namespace}/.*|exchange/.*)",
        validation_alias="USER_READ_PERMISSION",
        description="Read permission pattern with a {namespace} placeholder",
    )

    # Lifecycle
    rotation_interval_seconds: int = Field(
        default=3600,
        validation_alias="NAMESPACE_ROTATION_INTERVAL_SECONDS",
        description="Time between credential rotations of a namespace",
    )
    claim_lifetime_seconds: int = Field(
        default=14400,
        validation_alias="NAMESPACE_CLAIM_LIFETIME_SECONDS",
        description="Lifetime of a claim when the caller gives no expiry",
    )
    expiration_delay_seconds: int = Field(
        default=0,
        validation_alias="NAMESPACE_EXPIRATION_DELAY_SECONDS",
        description="Offset applied to the current time by the expire job",
    )

    # Monitoring thresholds
    alert_threshold: int = Field(
        default=5000,
        validation_alias="MONITOR_ALERT_THRESHOLD",
        description="Queue depth above which the tenant is warned",
    )
    delete_threshold: int = Field(
        default=10000,
        validation_alias="MONITOR_DELETE_THRESHOLD",
        description="Queue depth above which the queue is deleted",
    )
    connection_max_lifetime_seconds: int = Field(
        default=259200,
        validation_alias="MONITOR_CONNECTION_MAX_LIFETIME_SECONDS",
        description="Tenant connections older than this are terminated",
    )
    resource_state_retention_seconds: int = Field(
        default=172800,
        validation_alias="RESOURCE_STATE_RETENTION_SECONDS",
        description="Queue state records not updated for this long are removed",
    )

    # Batch behaviour
    scan_page_size: int = Field(
        default=250,
        validation_alias="SCAN_PAGE_SIZE",
        description="Number of records fetched per store scan page",
    )
    max_concurrency: int = Field(
        default=10,
        validation_alias="BROKER_MAX_CONCURRENCY",
        description="Maximum number of records processed concurrently in a sweep",
    )
    dry_run: bool = Field(
        default=False,
        validation_alias="DRY_RUN",
        description="Run the monitor without deleting, terminating or notifying",
    )

    # Notifications
    notify_url: str = Field(
        default="",
        validation_alias="NOTIFY_URL",
        description="Base URL of the notification service (empty = log only)",
    )
    notify_token: str = Field(
        default="",
        validation_alias="NOTIFY_TOKEN",
        description="Bearer token for the notification service",
    )

    # Record storage
    store_backend: str = Field(
        default="kubernetes",
        validation_alias="STORE_BACKEND",
        description="Record store backend: kubernetes or memory",
    )
    allow_memory_store: bool = Field(
        default=False,
        validation_alias="ALLOW_MEMORY_STORE",
        description="Let jobs run against the memory store, which starts empty",
    )
    store_namespace: str = Field(
        default="default",
        validation_alias="STORE_NAMESPACE",
        description="Kubernetes namespace holding the record ConfigMaps",
    )
    namespace_table_name: str = Field(
        default="namespaces",
        validation_alias="NAMESPACE_TABLE_NAME",
        description="Table name for namespace records",
    )
    resource_state_table_name: str = Field(
        default="rabbit-queues",
        validation_alias="RESOURCE_STATE_TABLE_NAME",
        description="Table name for queue state records",
    )

    # Metrics and tracing
    pushgateway_url: str = Field(
        default="",
        validation_alias="PUSHGATEWAY_URL",
        description="Prometheus Pushgateway address (empty = do not push)",
    )
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="OTEL_TRACING_ENABLED",
        description="Enable OpenTelemetry tracing",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP collector endpoint (gRPC)",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        validation_alias="OTEL_TRACES_SAMPLER_ARG",
        description="Fraction of root spans sampled",
    )

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.delete_threshold < self.alert_threshold:
            raise ValueError(
                "MONITOR_DELETE_THRESHOLD must not be below MONITOR_ALERT_THRESHOLD"
            )
        if self.max_concurrency < 1:
            raise ValueError("BROKER_MAX_CONCURRENCY must be at least 1")
        if self.scan_page_size < 1:
            raise ValueError("SCAN_PAGE_SIZE must be at least 1")
        return self

    @property
    def tags(self) -> list[str]:
        """Parse user tags from comma-separated string."""
        return [tag.strip() for tag in self.user_tags.split(",") if tag.strip()]

    @property
    def rotation_interval(self) -> timedelta:
        return timedelta(seconds=self.rotation_interval_seconds)

    @property
    def claim_lifetime(self) -> timedelta:
        return timedelta(seconds=self.claim_lifetime_seconds)

    @property
    def expiration_delay(self) -> timedelta:
        return timedelta(seconds=self.expiration_delay_seconds)

    @property
    def connection_max_lifetime(self) -> timedelta:
        return timedelta(seconds=self.connection_max_lifetime_seconds)

    @property
    def resource_state_retention(self) -> timedelta:
        return timedelta(seconds=self.resource_state_retention_seconds)


# Global settings instance - initialized once at module import
settings = Settings()
