"""Observability utilities for tracing, metrics, and logging."""

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional
from functools import wraps

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.instrumentation.asyncio import AsyncioInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST, REGISTRY
from prometheus_client.registry import CollectorRegistry

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def setup_logging(level: str = "INFO"):
    """Route structlog output through the stdlib root logger at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


def setup_tracing(service_name: str, service_version: str = "1.0.0"):
    """Setup OpenTelemetry tracing."""
    try:
        resource = Resource.create({
            "service.name": service_name,
            "service.version": service_version,
        })

        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(provider)

        # Instrument libraries
        AsyncioInstrumentor().instrument()
        HTTPXClientInstrumentor().instrument()

        logger.info("OpenTelemetry tracing initialized", service_name=service_name)

    except Exception as e:
        logger.error("Failed to setup tracing", error=str(e))


class Metrics:
    """Prometheus metrics collection."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        # Portal transport
        self.portal_requests = Counter(
            'portal_requests_total',
            'Total requests sent to the tech-transfer portal',
            ['endpoint', 'status'],
            registry=self.registry
        )

        self.portal_request_duration = Histogram(
            'portal_request_duration_seconds',
            'Portal request duration',
            ['endpoint'],
            registry=self.registry
        )

        self.portal_retries = Counter(
            'portal_retries_total',
            'Portal requests retried by the retry policy',
            ['endpoint'],
            registry=self.registry
        )

        # Fan-out
        self.fanout_subquery_failures = Counter(
            'fanout_subquery_failures_total',
            'Sub-queries skipped by a tolerant fan-out',
            ['fanout'],
            registry=self.registry
        )

        # Matching
        self.problem_solutions = Counter(
            'problem_solutions_total',
            'Problem matching requests by outcome',
            ['outcome'],
            registry=self.registry
        )

        self.dropped_matches = Counter(
            'dropped_matches_total',
            'Scored matches dropped for an out-of-range candidate index',
            registry=self.registry
        )

        self.ai_calls = Counter(
            'ai_calls_total',
            'AI capability calls',
            ['capability', 'status'],
            registry=self.registry
        )

        self.ai_call_duration = Histogram(
            'ai_call_duration_seconds',
            'AI capability call duration',
            ['capability'],
            registry=self.registry
        )


# Global metrics instance
metrics = Metrics()


def trace_span(span_name: str, attributes: Optional[Dict[str, Any]] = None):
    """Decorator to create a trace span."""
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            tracer = trace.get_tracer(__name__)
            with tracer.start_as_current_span(span_name, attributes=attributes or {}) as span:
                try:
                    result = await func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            tracer = trace.get_tracer(__name__)
            with tracer.start_as_current_span(span_name, attributes=attributes or {}) as span:
                try:
                    result = func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper

    return decorator


@asynccontextmanager
async def trace_operation(operation_name: str, attributes: Optional[Dict[str, Any]] = None):
    """Context manager for tracing operations."""
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span(operation_name, attributes=attributes or {}) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def get_metrics():
    """Get Prometheus metrics."""
    return generate_latest(metrics.registry), CONTENT_TYPE_LATEST


def log_event(event_type: str, **kwargs):
    """Log a structured event."""
    logger.info(f"Event: {event_type}", event_type=event_type, **kwargs)


def log_error(error_type: str, error: Exception, **kwargs):
    """Log a structured error."""
    logger.error(f"Error: {error_type}",
                 error_type=error_type,
                 error_message=str(error),
                 error_class=error.__class__.__name__,
                 **kwargs)


def log_performance(operation: str, duration: float, **kwargs):
    """Log performance metrics."""
    logger.info(f"Performance: {operation}",
                operation=operation,
                duration=duration,
                **kwargs)

