"""
Structured logging for scheduled job runs.

Every job run binds a short correlation ID, and every record emitted during
that run carries it, so a run can be pulled out of aggregated logs with one
filter. Records render as one JSON document per line unless JSON output is
disabled.

Domain context travels through ``extra=``:

    logger.info("Deleted queue", extra={"namespace": "acme", "count": 1})
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

_run_id: ContextVar[str] = ContextVar("namespace_manager_run_id", default="")

# ``extra=`` keys promoted into the JSON document
STRUCTURED_FIELDS = (
    "job",
    "namespace",
    "resource_type",
    "resource_name",
    "operation",
    "duration",
    "error_type",
    "http_status",
    "queue_state",
    "messages",
    "count",
    "failures",
    "dry_run",
)

# Client libraries that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "kubernetes", "urllib3")

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
PLAIN_FORMAT_WITH_ID = (
    "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(value: str) -> str:
    _run_id.set(value)
    return value


def get_correlation_id() -> str:
    return _run_id.get()


class CorrelationIDFilter(logging.Filter):
    """Stamp records with the current run's correlation ID, minting one if unset."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or set_correlation_id(
            generate_correlation_id()
        )
        return True


class StructuredFormatter(logging.Formatter):
    """Render a record as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        document = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }
        document.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return json.dumps(document, default=str)


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
) -> None:
    """
    Replace the root logger's handlers with a single stderr handler.

    Args:
        log_level: Root level name; unknown names fall back to INFO
        enable_json_formatting: Emit JSON documents instead of plain lines
        correlation_id_enabled: Attach the run's correlation ID to records
    """
    handler = logging.StreamHandler()
    if enable_json_formatting:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                PLAIN_FORMAT_WITH_ID if correlation_id_enabled else PLAIN_FORMAT
            )
        )
    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class JobLogger:
    """Start and end markers for one job run."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_job_start(self, job: str, correlation_id: str | None = None) -> str:
        """Bind a correlation ID to this run and log the start marker."""
        run_id = set_correlation_id(correlation_id or generate_correlation_id())
        self.logger.info(
            f"Starting {job} job", extra={"job": job, "operation": "job_start"}
        )
        return run_id

    def log_job_success(
        self, job: str, count: int, failures: int, duration: float
    ) -> None:
        self.logger.log(
            logging.WARNING if failures else logging.INFO,
            f"{job} job finished: {count} processed, {failures} failed",
            extra={
                "job": job,
                "operation": "job_done",
                "count": count,
                "failures": failures,
                "duration": duration,
            },
        )

    def log_job_error(self, job: str, error: Exception, duration: float) -> None:
        self.logger.exception(
            f"{job} job aborted: {error}",
            exc_info=error,
            extra={
                "job": job,
                "operation": "job_error",
                "error_type": type(error).__name__,
                "duration": duration,
            },
        )
