"""
Tests for OpenTelemetry distributed tracing configuration.

Tests cover:
- Header parsing for OTLP exporters
- Resource and sampler creation
- Initialization and shutdown
- Trace ID and span ID extraction
"""

from unittest.mock import Mock, patch

import pytest
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    TraceIdRatioBased,
)

from account_guard.core.telemetry import (
    _create_resource,
    _create_sampler,
    _parse_headers,
    get_span_id,
    get_trace_id,
    init_telemetry,
    shutdown_telemetry,
)


class TestParseHeaders:
    """Tests for the _parse_headers function."""

    def test_parse_headers_multiple_pairs(self):
        """Test parsing multiple header key-value pairs."""
        assert _parse_headers("key1=value1,key2=value2") == {"key1": "value1", "key2": "value2"}

    def test_parse_headers_with_spaces(self):
        """Test parsing headers with extra whitespace."""
        assert _parse_headers(" key1 = value1 , key2 = value2 ") == {
            "key1": "value1",
            "key2": "value2",
        }

    @pytest.mark.parametrize("value", ["", None])
    def test_parse_headers_empty(self, value):
        """Test that empty input returns an empty dict."""
        assert _parse_headers(value) == {}

    def test_parse_headers_values_containing_equals(self):
        """Test that only the first '=' splits key and value."""
        assert _parse_headers("token=abc=123") == {"token": "abc=123"}

    def test_parse_headers_malformed_skips_invalid(self):
        """Test that pairs without '=' are skipped."""
        assert _parse_headers("key1=value1,invalidpair") == {"key1": "value1"}


class TestResourceAndSampler:
    """Tests for _create_resource and _create_sampler."""

    def test_create_resource(self):
        """Test resource attributes."""
        resource = _create_resource(service_name="guard", app_env="test", app_version="1.2.3")
        assert resource.attributes[SERVICE_NAME] == "guard"
        assert resource.attributes[DEPLOYMENT_ENVIRONMENT] == "test"
        assert resource.attributes["service.version"] == "1.2.3"

    def test_fixed_samplers(self):
        """Test always_on and always_off."""
        assert _create_sampler("always_on", 0.5) is ALWAYS_ON
        assert _create_sampler("always_off", 0.5) is ALWAYS_OFF

    def test_ratio_samplers(self):
        """Test traceidratio and the parent-based default."""
        ratio = _create_sampler("traceidratio", 0.25)
        assert isinstance(ratio, TraceIdRatioBased)
        assert ratio.rate == 0.25
        assert isinstance(_create_sampler("parent_trace_always", 1.0), ParentBased)
        assert isinstance(_create_sampler("unknown", 1.0), ParentBased)


class TestInitAndShutdown:
    """Tests for init_telemetry and shutdown_telemetry."""

    @patch("account_guard.core.config.settings.otel_enabled", False)
    def test_init_telemetry_disabled_returns_none(self):
        """Test that telemetry is not initialized when disabled."""
        assert init_telemetry() is None

    @patch("account_guard.core.config.settings.otel_enabled", True)
    @patch("account_guard.core.telemetry.trace.set_tracer_provider")
    def test_init_telemetry_enabled(self, mock_set_provider):
        """Test that an enabled init installs a provider with the given exporter."""
        provider = init_telemetry(
            service_name="guard-test", sampler_name="always_on", exporter=InMemorySpanExporter()
        )
        try:
            assert isinstance(provider, TracerProvider)
            assert provider.resource.attributes[SERVICE_NAME] == "guard-test"
            assert provider.sampler is ALWAYS_ON
            mock_set_provider.assert_called_once_with(provider)
        finally:
            shutdown_telemetry()

    @patch("account_guard.core.telemetry._tracer_provider", None)
    def test_shutdown_telemetry_not_initialized(self):
        """Test that shutdown without init is a no-op."""
        shutdown_telemetry()

    def test_shutdown_telemetry_initialized(self):
        """Test that shutdown flushes and clears the provider."""
        mock_provider = Mock()
        with patch("account_guard.core.telemetry._tracer_provider", mock_provider):
            shutdown_telemetry()
        mock_provider.shutdown.assert_called_once()


class TestTraceIds:
    """Tests for trace and span ID extraction."""

    def test_no_active_span(self):
        """Test that IDs are None outside a recording span."""
        assert get_trace_id() is None
        assert get_span_id() is None

    def test_ids_inside_span(self):
        """Test hex formatting of the current span context."""
        tracer = TracerProvider().get_tracer("test")
        with tracer.start_as_current_span("validate") as span:
            context = span.get_span_context()
            assert get_trace_id() == format(context.trace_id, "032x")
            assert get_span_id() == format(context.span_id, "016x")
            assert len(get_trace_id()) == 32
            assert len(get_span_id()) == 16
