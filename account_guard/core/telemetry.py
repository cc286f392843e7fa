"""
OpenTelemetry distributed tracing configuration for account validation.

Validation runs and multi-account loads open spans through ``get_tracer``.
When tracing is not initialized the global no-op provider is used, so spans
cost nothing.

Configuration via environment variables (see ``account_guard.core.config``):
- ACCOUNT_GUARD_OTEL_ENABLED: Enable/disable tracing (default: false)
- ACCOUNT_GUARD_OTEL_SERVICE_NAME: Service name for traces
- ACCOUNT_GUARD_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint
- ACCOUNT_GUARD_OTEL_EXPORTER_OTLP_HEADERS: Optional headers for OTLP exporter
- ACCOUNT_GUARD_OTEL_TRACES_SAMPLER: Sampling strategy (default: parent_trace_always)
- ACCOUNT_GUARD_OTEL_TRACES_SAMPLER_ARG: Sampling rate (default: 1.0)

Usage:
    from account_guard.core.telemetry import init_telemetry, shutdown_telemetry

    init_telemetry()
    ...
    shutdown_telemetry()
"""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    Sampler,
    TraceIdRatioBased,
)

logger = logging.getLogger(__name__)

TRACER_NAME = "account_guard"

# Global tracer provider reference for shutdown
_tracer_provider: TracerProvider | None = None


def _parse_headers(headers_string: str | None) -> dict[str, str]:
    """
    Parse OTLP headers from environment variable format.

    Args:
        headers_string: Headers in format "key1=value1,key2=value2"

    Returns:
        Dictionary of headers
    """
    if not headers_string:
        return {}

    headers = {}
    for pair in headers_string.split(","):
        pair = pair.strip()
        if "=" in pair:
            key, value = pair.split("=", 1)
            headers[key.strip()] = value.strip()
    return headers


def _create_resource(service_name: str, app_env: str, app_version: str = "0.1.0") -> Resource:
    attributes = {
        SERVICE_NAME: service_name,
        DEPLOYMENT_ENVIRONMENT: app_env,
        "service.version": app_version,
        "telemetry.sdk.language": "python",
        "telemetry.sdk.name": "opentelemetry",
    }
    return Resource.create(attributes)


def _create_sampler(sampler_name: str, sampler_arg: float) -> Sampler:
    """
    Build a sampler from its configured name.

    Supports: parent_trace_always (default), always_on, always_off, traceidratio.
    """
    if sampler_name == "always_on":
        return ALWAYS_ON
    if sampler_name == "always_off":
        return ALWAYS_OFF
    if sampler_name == "traceidratio":
        return TraceIdRatioBased(sampler_arg)
    return ParentBased(root=TraceIdRatioBased(sampler_arg))


def init_telemetry(
    service_name: str | None = None,
    app_env: str | None = None,
    otlp_endpoint: str | None = None,
    otlp_headers: str | None = None,
    sampler_name: str | None = None,
    sampler_arg: float | None = None,
    exporter: SpanExporter | None = None,
) -> TracerProvider | None:
    """
    Initialize OpenTelemetry distributed tracing.

    Sets up a tracer provider with resource attributes and a batch span
    processor. The OTLP gRPC exporter is used unless ``exporter`` is given.

    Args:
        service_name: Service name (defaults to settings)
        app_env: Environment (local/test/prod)
        otlp_endpoint: OTLP collector endpoint
        otlp_headers: OTLP exporter headers
        sampler_name: Sampling strategy
        sampler_arg: Sampling rate
        exporter: Span exporter to use instead of OTLP

    Returns:
        TracerProvider instance if enabled, None otherwise
    """
    global _tracer_provider

    from account_guard.core.config import settings

    if not settings.otel_enabled:
        logger.info("OpenTelemetry tracing is disabled (ACCOUNT_GUARD_OTEL_ENABLED=false)")
        return None

    service_name = service_name or settings.otel_service_name
    app_env = app_env or settings.app_env.value
    otlp_endpoint = otlp_endpoint or settings.otel_exporter_otlp_endpoint
    otlp_headers = otlp_headers or settings.otel_exporter_otlp_headers
    sampler_name = sampler_name or settings.otel_traces_sampler
    sampler_arg = sampler_arg if sampler_arg is not None else settings.otel_traces_sampler_arg

    resource = _create_resource(service_name=service_name, app_env=app_env)
    tracer_provider = TracerProvider(
        resource=resource, sampler=_create_sampler(sampler_name, sampler_arg)
    )

    span_exporter = exporter or OTLPSpanExporter(
        endpoint=otlp_endpoint, headers=_parse_headers(otlp_headers)
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    trace.set_tracer_provider(tracer_provider)
    _tracer_provider = tracer_provider

    logger.info(
        "OpenTelemetry initialized",
        extra={
            "service": service_name,
            "environment": app_env,
            "endpoint": otlp_endpoint,
            "sampler": sampler_name,
        },
    )
    return tracer_provider


def shutdown_telemetry() -> None:
    """
    Shutdown the tracer provider, flushing pending spans.
    """
    global _tracer_provider

    if _tracer_provider is None:
        return

    _tracer_provider.shutdown()
    logger.info("OpenTelemetry tracer provider shut down")
    _tracer_provider = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


def get_trace_id() -> str | None:
    """
    Get the current trace ID as a 32-char hex string.

    Returns:
        Trace ID, or None when no span is recording
    """
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x")


def get_span_id() -> str | None:
    """Get the current span ID as a 16-char hex string, or None."""
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.span_id, "016x")
