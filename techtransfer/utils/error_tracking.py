"""Sentry error tracking configuration."""

import functools
import inspect
import os
import logging
import time
from typing import Optional, Dict, Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = structlog.get_logger(__name__)

SERVICE_NAME = "techtransfer-pipeline"

SENSITIVE_HEADERS = ["authorization", "cookie", "x-api-key", "anthropic-api-key"]
SENSITIVE_EXTRA_KEYS = ["api_key", "token", "secret", "key", "problem"]


def setup_sentry(
    dsn: Optional[str] = None,
    environment: str = "development",
    service_name: str = SERVICE_NAME,
    service_version: str = "1.0.0",
    traces_sample_rate: float = 0.1,
) -> bool:
    """Setup Sentry error tracking. Returns False when no DSN is configured."""
    try:
        if not dsn:
            dsn = os.getenv("SENTRY_DSN")

        if not dsn:
            logger.warning("Sentry DSN not provided, error tracking disabled")
            return False

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=f"{service_name}@{service_version}",
            traces_sample_rate=traces_sample_rate,
            integrations=[
                AsyncioIntegration(),
                HttpxIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR
                ),
            ],
            before_send=filter_sensitive_data,
            before_breadcrumb=add_context_to_breadcrumbs,
            debug=environment == "development"
        )

        logger.info("Sentry error tracking initialized",
                    environment=environment,
                    service_name=service_name)
        return True

    except Exception as e:
        logger.error("Failed to setup Sentry", error=str(e))
        return False


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Filter API keys and problem text out of Sentry events."""
    try:
        headers = event.get("request", {}).get("headers")
        if headers:
            for header in list(headers):
                if header.lower() in SENSITIVE_HEADERS:
                    headers[header] = "[REDACTED]"

        extra = event.get("extra")
        if extra:
            for key in SENSITIVE_EXTRA_KEYS:
                if key in extra:
                    extra[key] = "[REDACTED]"

        return event

    except Exception as e:
        logger.error("Error filtering sensitive data", error=str(e))
        return event


def add_context_to_breadcrumbs(breadcrumb: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Add service context to Sentry breadcrumbs."""
    breadcrumb["data"] = breadcrumb.get("data") or {}
    breadcrumb["data"]["service"] = SERVICE_NAME
    breadcrumb.setdefault("timestamp", time.time())
    return breadcrumb


def capture_exception(error: Exception, context: Optional[Dict[str, Any]] = None):
    """Capture an exception with additional context."""
    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_tag(key, value)
            sentry_sdk.capture_exception(error)

        logger.debug("Exception captured in Sentry",
                     error_type=type(error).__name__,
                     error_message=str(error))

    except Exception as e:
        logger.error("Failed to capture exception in Sentry", error=str(e))


def track_errors(func):
    """Decorator reporting exceptions to Sentry before re-raising them."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            capture_exception(e, {"function": func.__name__, "module": func.__module__})
            raise

    @functools.wraps(func)
    async def async_wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            capture_exception(e, {"function": func.__name__, "module": func.__module__})
            raise

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    else:
        return wrapper
