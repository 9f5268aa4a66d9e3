import pytest
import time
import asyncio
from unittest.mock import patch

from prometheus_client import CollectorRegistry

from techtransfer.utils.error_tracking import (
    add_context_to_breadcrumbs, filter_sensitive_data, setup_sentry, track_errors
)
from techtransfer.utils.observability import (
    Metrics, trace_span, trace_operation, get_metrics,
    log_event, log_error, log_performance
)


class TestObservability:
    """Test observability functionality."""

    def test_metrics_initialization(self):
        """Test metrics initialization on an isolated registry."""
        metrics = Metrics(registry=CollectorRegistry())

        assert hasattr(metrics, 'portal_requests')
        assert hasattr(metrics, 'portal_request_duration')
        assert hasattr(metrics, 'portal_retries')
        assert hasattr(metrics, 'fanout_subquery_failures')
        assert hasattr(metrics, 'problem_solutions')
        assert hasattr(metrics, 'dropped_matches')
        assert hasattr(metrics, 'ai_calls')
        assert hasattr(metrics, 'ai_call_duration')

    def test_metrics_increment(self):
        """Test metrics incrementing."""
        registry = CollectorRegistry()
        metrics = Metrics(registry=registry)

        metrics.portal_requests.labels(endpoint="search", status="200").inc()
        metrics.fanout_subquery_failures.labels(fanout="featured").inc(2)

        assert registry.get_sample_value(
            'portal_requests_total', {'endpoint': 'search', 'status': '200'}
        ) == 1.0
        assert registry.get_sample_value(
            'fanout_subquery_failures_total', {'fanout': 'featured'}
        ) == 2.0

    def test_get_metrics(self):
        """Test the exposition output of the global registry."""
        payload, content_type = get_metrics()
        assert b'portal_requests_total' in payload
        assert content_type.startswith('text/plain')

    @pytest.mark.asyncio
    async def test_trace_span_decorator(self):
        """Test trace span decorator."""
        @trace_span("test_operation")
        async def test_function():
            await asyncio.sleep(0.01)
            return "success"

        result = await test_function()
        assert result == "success"

    def test_trace_span_sync_decorator(self):
        """Test trace span decorator for sync functions."""
        @trace_span("test_sync_operation")
        def test_sync_function():
            time.sleep(0.01)
            return "success"

        assert test_sync_function() == "success"

    @pytest.mark.asyncio
    async def test_trace_span_reraises(self):
        @trace_span("failing_operation")
        async def failing():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await failing()

    @pytest.mark.asyncio
    async def test_trace_operation(self):
        """Test trace operation context manager."""
        async with trace_operation("test_context_operation") as span:
            assert span is not None

    def test_log_helpers(self):
        """Test logging helpers don't crash."""
        log_event("patent_scraped", case_number="LEW-TOPS-1")
        log_error("scrape_failed", ValueError("bad html"), case_number="LEW-TOPS-1")
        log_performance("search", 0.25, query="robotics")


class TestErrorTracking:
    """Test Sentry helpers."""

    def test_setup_without_dsn_is_disabled(self, monkeypatch):
        monkeypatch.delenv("SENTRY_DSN", raising=False)
        assert setup_sentry(None) is False

    def test_filter_sensitive_data(self):
        event = {
            "request": {"headers": {"X-Api-Key": "sk-secret", "Accept": "application/json"}},
            "extra": {"api_key": "sk-secret", "query": "robotics"},
        }

        filtered = filter_sensitive_data(event, {})

        assert filtered["request"]["headers"]["X-Api-Key"] == "[REDACTED]"
        assert filtered["request"]["headers"]["Accept"] == "application/json"
        assert filtered["extra"]["api_key"] == "[REDACTED]"
        assert filtered["extra"]["query"] == "robotics"

    def test_breadcrumb_context(self):
        breadcrumb = add_context_to_breadcrumbs({"message": "hi"}, {})
        assert breadcrumb["data"]["service"] == "techtransfer-pipeline"
        assert "timestamp" in breadcrumb

    @pytest.mark.asyncio
    async def test_track_errors_captures_and_reraises(self):
        @track_errors
        async def broken():
            raise RuntimeError("boom")

        with patch("techtransfer.utils.error_tracking.capture_exception") as capture:
            with pytest.raises(RuntimeError):
                await broken()

        capture.assert_called_once()
