"""
Observability module for account validation.

Provides:
- Structured logging with JSON format and correlation IDs
- Validation-run correlation ID (run_id) generation and propagation
- Prometheus metrics collection (validation runs, expression compilation)

Usage:
    from account_guard.core.observability import (
        get_run_id,
        set_run_id,
        metrics,
        track_validation,
    )
"""

import json
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from account_guard.domain.enums import ValidationOutcome

# ============================================================================
# Context Variables for Run Tracking
# ============================================================================

# Correlation ID - links all logs for a single validation run
_run_id_ctx: ContextVar[str] = ContextVar("run_id", default="")

# Name of the account type currently being validated
_account_type_ctx: ContextVar[str] = ContextVar("account_type", default="")


def generate_run_id() -> str:
    """
    Generate a unique validation-run ID for correlation.

    Returns:
        String representation of a UUID4
    """
    return str(uuid.uuid4())


def get_run_id() -> str:
    """Get the current run ID from context."""
    return _run_id_ctx.get()


def set_run_id(run_id: str) -> None:
    """Set the correlation ID for the current validation run."""
    _run_id_ctx.set(run_id)


def get_account_type() -> str:
    return _account_type_ctx.get()


def set_account_type(name: str) -> None:
    _account_type_ctx.set(name)


@contextmanager
def run_context(run_id: str | None = None) -> Iterator[str]:
    """
    Bind a run ID for the duration of a block, restoring the previous one after.

    Nested blocks reuse the outer run ID unless one is passed explicitly.
    """
    current = get_run_id()
    effective = run_id or current or generate_run_id()
    token = _run_id_ctx.set(effective)
    try:
        yield effective
    finally:
        _run_id_ctx.reset(token)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - run_id: Validation-run correlation ID (if available)
    - account_type: Account type being validated (if available)
    - trace_id / span_id: OpenTelemetry context (if a span is recording)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = get_run_id()
        if run_id:
            log_entry["run_id"] = run_id

        account_type = get_account_type()
        if account_type:
            log_entry["account_type"] = account_type

        from account_guard.core.telemetry import get_span_id, get_trace_id

        trace_id = get_trace_id()
        if trace_id:
            log_entry["trace_id"] = trace_id
        span_id = get_span_id()
        if span_id:
            log_entry["span_id"] = span_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        # Fields passed via logger.info("msg", extra={...})
        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO", structured: bool = True) -> None:
    """
    Configure root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit JSON lines when True, plain text otherwise
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root_logger.addHandler(handler)


def configure_from_settings() -> None:
    """Configure logging from the library settings."""
    from account_guard.core.config import settings

    configure_structured_logging(
        settings.app_log_level, structured=settings.observability_structured_logs
    )


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with the host's own metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection.

    Metrics groups:
    - Validation: run outcomes by account type and error code, run latency
    - Expressions: compilation outcomes and latency, evaluation results
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # -------------------------------------------------------------------
        # Validation Metrics
        # -------------------------------------------------------------------

        self.validations_total = Counter(
            "account_validations_total",
            "Total account validation runs",
            ["account_type", "outcome", "code"],
            registry=self.registry,
        )

        self.validation_duration_seconds = Histogram(
            "account_validation_duration_seconds",
            "Account validation latency in seconds",
            ["account_type"],
            buckets=(0.00001, 0.00005, 0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1),
            registry=self.registry,
        )

        self.instruction_loads_total = Counter(
            "instruction_account_loads_total",
            "Total multi-account instruction loads",
            ["outcome", "code"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Expression Metrics
        # -------------------------------------------------------------------

        self.expression_compilations_total = Counter(
            "expression_compilations_total",
            "Total constraint expression compilations",
            ["status"],
            registry=self.registry,
        )

        self.expression_compile_duration_seconds = Histogram(
            "expression_compile_duration_seconds",
            "Constraint expression compilation duration in seconds",
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1),
            registry=self.registry,
        )

        self.expression_evaluations_total = Counter(
            "expression_evaluations_total",
            "Total constraint expression evaluations",
            ["result"],
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


def _metrics_enabled() -> bool:
    from account_guard.core.config import settings

    return settings.metrics_enabled


@contextmanager
def track_validation(account_type: str, metrics_instance: Metrics | None = None) -> Iterator[None]:
    """
    Context manager recording the outcome and latency of one validation run.

    Usage:
        with track_validation("Vault"):
            pipeline.run(...)

    An AccountValidationError escaping the block is counted as a failure
    labelled with its error code, then re-raised.
    """
    from account_guard.core.errors import AccountValidationError

    m = metrics_instance or metrics
    enabled = _metrics_enabled()
    token = _account_type_ctx.set(account_type)
    start = time.perf_counter()
    outcome = ValidationOutcome.PASSED
    code = "none"
    try:
        yield
    except AccountValidationError as exc:
        outcome = ValidationOutcome.FAILED
        code = exc.code.label
        raise
    except Exception:
        outcome = ValidationOutcome.FAILED
        code = "error"
        raise
    finally:
        if enabled:
            m.validations_total.labels(
                account_type=account_type, outcome=outcome.value, code=code
            ).inc()
            m.validation_duration_seconds.labels(account_type=account_type).observe(
                time.perf_counter() - start
            )
        _account_type_ctx.reset(token)


@contextmanager
def track_instruction_load(metrics_instance: Metrics | None = None) -> Iterator[None]:
    """Count one multi-account load by outcome and error code."""
    from account_guard.core.errors import AccountValidationError

    m = metrics_instance or metrics
    outcome = ValidationOutcome.PASSED
    code = "none"
    try:
        yield
    except AccountValidationError as exc:
        outcome = ValidationOutcome.FAILED
        code = exc.code.label
        raise
    except Exception:
        outcome = ValidationOutcome.FAILED
        code = "error"
        raise
    finally:
        if _metrics_enabled():
            m.instruction_loads_total.labels(outcome=outcome.value, code=code).inc()


def record_evaluation(result: str, metrics_instance: Metrics | None = None) -> None:
    """Count one expression evaluation by result label (``true``/``false``/``invalid``)."""
    if _metrics_enabled():
        (metrics_instance or metrics).expression_evaluations_total.labels(result=result).inc()


# ============================================================================
# Metrics Export
# ============================================================================


def render_metrics() -> bytes:
    """
    Render all metrics in Prometheus text format for scraping.

    Returns:
        Exposition-format bytes for the library's private registry
    """
    return generate_latest(_registry)
