"""
OpenTelemetry tracing for job runs.

When enabled, spans are batched to an OTLP collector over gRPC and every
httpx request (management API and notification service calls) becomes a
child span of the job or record operation that issued it. When disabled,
the OpenTelemetry API falls back to no-op tracers and ``traced`` costs
nothing.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

from .. import __version__

logger = logging.getLogger(__name__)

TRACER_NAME = "namespace_manager"

_provider: TracerProvider | None = None
_instrumentor: HTTPXClientInstrumentor | None = None

P = ParamSpec("P")
R = TypeVar("R")


def _build_provider(
    endpoint: str, service_name: str, sample_rate: float, insecure: bool
) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create(
            {SERVICE_NAME: service_name, SERVICE_VERSION: __version__}
        ),
        # Child spans follow the sampling decision of their job span
        sampler=ParentBased(root=TraceIdRatioBased(sample_rate)),
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    return provider


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "broker-namespace-manager",
    sample_rate: float = 1.0,
    insecure: bool = True,
) -> TracerProvider | None:
    """
    Install the global tracer provider for this process.

    Calling it again returns the provider already installed.

    Args:
        enabled: When False nothing is installed and None is returned
        endpoint: OTLP gRPC collector endpoint
        service_name: ``service.name`` resource attribute
        sample_rate: Fraction of job runs to trace, 0.0 to 1.0
        insecure: Connect to the collector without TLS
    """
    global _provider, _instrumentor

    if _provider is not None:
        return _provider
    if not enabled:
        logger.debug("Tracing disabled")
        return None

    _provider = _build_provider(endpoint, service_name, sample_rate, insecure)
    trace.set_tracer_provider(_provider)

    instrumentor = HTTPXClientInstrumentor()
    try:
        instrumentor.instrument(tracer_provider=_provider)
    except Exception as e:
        logger.warning(f"httpx instrumentation unavailable: {e}")
    else:
        _instrumentor = instrumentor

    logger.info(
        f"Tracing to {endpoint} as {service_name} (sample rate {sample_rate})"
    )
    return _provider


def shutdown_tracing() -> None:
    """Flush buffered spans and remove the httpx instrumentation."""
    global _provider, _instrumentor

    if _instrumentor is not None:
        _instrumentor.uninstrument()
        _instrumentor = None
    if _provider is not None:
        _provider.shutdown()
        _provider = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME, __version__)


def traced(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Run an async function inside a span named ``operation_name``.

    A raised exception marks the span as failed, is attached to it as an
    event, and propagates unchanged.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with get_tracer().start_as_current_span(
                operation_name,
                attributes={"code.function": func.__qualname__},
                record_exception=False,
                set_status_on_exception=False,
            ) as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper

    return decorator
