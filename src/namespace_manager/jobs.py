"""
Scheduler-facing entry points.

Each invocation runs exactly one bounded job and exits:

    namespace-manager rotate
    namespace-manager expire
    namespace-manager monitor [--dry-run]

The process exits with status 1 when the job finished with per-record
failures and 2 when it aborted. Running jobs on a schedule, one at a time per
kind, is left to the scheduler (a Kubernetes CronJob with
``concurrencyPolicy: Forbid`` for example).
"""

import argparse
import asyncio
import logging
import sys
import time
from datetime import UTC, datetime

from namespace_manager import __version__
from namespace_manager.constants import JOB_EXPIRE, JOB_MONITOR, JOB_ROTATE, JOBS
from namespace_manager.errors import ConfigurationError
from namespace_manager.models import BatchResult, MonitorResult, ensure_utc
from namespace_manager.observability.logging import (
    JobLogger,
    setup_structured_logging,
)
from namespace_manager.observability.metrics import push_metrics, track_job
from namespace_manager.observability.tracing import setup_tracing, shutdown_tracing
from namespace_manager.services import BrokerMonitor, NamespaceLifecycleManager
from namespace_manager.settings import Settings, settings
from namespace_manager.stores import build_stores
from namespace_manager.utils.notify import Notifier, NotifyServiceClient, NullNotifier
from namespace_manager.utils.rabbit_admin import RabbitManagementClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_ABORTED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="namespace-manager",
        description="Run one broker namespace maintenance job.",
    )
    parser.add_argument("job", choices=JOBS, help="Job to run")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log monitor decisions without changing the broker",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def build_broker(config: Settings) -> RabbitManagementClient:
    return RabbitManagementClient(
        config.rabbit_management_url,
        config.rabbit_username,
        config.rabbit_password,
        timeout=config.rabbit_timeout_seconds,
    )


def build_notifier(config: Settings) -> Notifier:
    if not config.notify_url:
        return NullNotifier()
    return NotifyServiceClient(config.notify_url, token=config.notify_token)


def check_store_backend(config: Settings) -> None:
    """Refuse to run a job against the memory store unless opted in."""
    if config.store_backend.lower() == "memory" and not config.allow_memory_store:
        raise ConfigurationError(
            "The memory store starts empty on every run, so a monitor sweep "
            "would delete every tenant queue and exchange",
            user_action=(
                "Set STORE_BACKEND=kubernetes, or ALLOW_MEMORY_STORE=true for "
                "local runs against a disposable broker"
            ),
        )


def summarize(result: BatchResult | MonitorResult) -> tuple[int, int]:
    """Return (items processed, failures) for logging."""
    if isinstance(result, BatchResult):
        return result.count, len(result.failures)
    processed = (
        result.connections_terminated
        + result.queues_deleted
        + result.exchanges_deleted
        + result.states_collected
    )
    return processed, len(result.failures)


async def run_job(
    job: str, config: Settings, now: datetime | None = None
) -> BatchResult | MonitorResult:
    """
    Run one job against the configured stores, broker and notifier.

    Raises:
        ConfigurationError: If the memory store is selected without opt-in
        ManagerError: If the job could not run at all
    """
    check_store_backend(config)
    now = ensure_utc(now) if now else datetime.now(UTC)
    namespaces, resource_states = build_stores(config)
    broker = build_broker(config)
    notifier = build_notifier(config)

    async with track_job(job) as tracker:
        try:
            if job == JOB_ROTATE:
                manager = NamespaceLifecycleManager(namespaces, broker, config)
                result = await manager.rotate(now)
            elif job == JOB_EXPIRE:
                manager = NamespaceLifecycleManager(namespaces, broker, config)
                result = await manager.expire(now + config.expiration_delay)
            elif job == JOB_MONITOR:
                monitor = BrokerMonitor(
                    namespaces, resource_states, broker, notifier, config
                )
                result = await monitor.run(now)
            else:
                raise ValueError(f"Unknown job '{job}'")
        finally:
            await broker.close()
            await notifier.close()
        tracker["failed"] = not result.ok
    return result


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = settings
    if args.dry_run or args.log_level:
        overrides: dict = {}
        if args.dry_run:
            overrides["dry_run"] = True
        if args.log_level:
            overrides["log_level"] = args.log_level
        config = settings.model_copy(update=overrides)

    setup_structured_logging(
        log_level=config.log_level,
        enable_json_formatting=config.json_logs,
        correlation_id_enabled=config.correlation_ids,
    )
    setup_tracing(
        enabled=config.tracing_enabled,
        endpoint=config.tracing_endpoint,
        sample_rate=config.tracing_sample_rate,
    )

    job_logger = JobLogger(__name__)
    job_logger.log_job_start(args.job)
    start_time = time.time()
    try:
        result = asyncio.run(run_job(args.job, config))
    except Exception as e:
        job_logger.log_job_error(args.job, e, time.time() - start_time)
        return EXIT_ABORTED
    finally:
        push_metrics(config, args.job)
        shutdown_tracing()

    count, failures = summarize(result)
    job_logger.log_job_success(args.job, count, failures, time.time() - start_time)
    return EXIT_PARTIAL if failures else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
