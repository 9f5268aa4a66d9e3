"""Shared HTTP transport for portal requests."""

import asyncio
import time
from typing import Optional, Set

import httpx
import structlog

from ..config import Settings
from .observability import metrics

logger = structlog.get_logger(__name__)


class RetryPolicy:
    """Decides whether a failed request is retried.

    The base policy never retries; callers own retries unless they opt in.
    """

    def delay_for(self, attempt: int, error: Optional[Exception] = None,
                  response: Optional[httpx.Response] = None) -> Optional[float]:
        """Return seconds to wait before another attempt, or None to stop."""
        return None


class FixedRetryPolicy(RetryPolicy):
    """Retries transport errors and selected statuses a fixed number of times."""

    def __init__(self, attempts: int = 2, delay: float = 1.0,
                 retry_statuses: Optional[Set[int]] = None):
        self.attempts = attempts
        self.delay = delay
        self.retry_statuses = retry_statuses if retry_statuses is not None else {502, 503, 504}

    def delay_for(self, attempt: int, error: Optional[Exception] = None,
                  response: Optional[httpx.Response] = None) -> Optional[float]:
        if attempt > self.attempts:
            return None
        if error is not None and isinstance(error, httpx.TransportError):
            return self.delay
        if response is not None and response.status_code in self.retry_statuses:
            return self.delay
        return None


def retry_policy_from_settings(settings: Settings) -> RetryPolicy:
    """Build the retry policy described by the settings."""
    if settings.max_retries > 0:
        return FixedRetryPolicy(attempts=settings.max_retries, delay=settings.retry_delay)
    return RetryPolicy()


class PortalTransport:
    """Connection-pooled HTTP client shared by the portal clients.

    A single instance is safe to use from concurrent tasks.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 retry_policy: Optional[RetryPolicy] = None):
        self.settings = settings or Settings()
        self.retry_policy = retry_policy or retry_policy_from_settings(self.settings)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            follow_redirects=True,
            headers={"User-Agent": self.settings.user_agent},
        )

    async def get(self, url, endpoint: str = "portal") -> httpx.Response:
        """GET a URL, consulting the retry policy after each failed attempt.

        Transport errors that the policy does not retry propagate unchanged.
        """
        attempt = 0
        while True:
            attempt += 1
            start_time = time.time()
            try:
                response = await self.client.get(url)
            except httpx.HTTPError as e:
                metrics.portal_requests.labels(endpoint=endpoint, status="error").inc()
                delay = self.retry_policy.delay_for(attempt, error=e)
                if delay is None:
                    logger.error("Portal request failed", endpoint=endpoint, url=str(url),
                                 attempt=attempt, error=str(e))
                    raise
                await self._wait(endpoint, attempt, delay)
                continue
            finally:
                metrics.portal_request_duration.labels(endpoint=endpoint).observe(
                    time.time() - start_time
                )

            metrics.portal_requests.labels(endpoint=endpoint, status=str(response.status_code)).inc()
            if response.status_code != 200:
                delay = self.retry_policy.delay_for(attempt, response=response)
                if delay is not None:
                    await self._wait(endpoint, attempt, delay)
                    continue
            return response

    async def _wait(self, endpoint: str, attempt: int, delay: float):
        metrics.portal_retries.labels(endpoint=endpoint).inc()
        logger.warning("Retrying portal request", endpoint=endpoint, attempt=attempt, delay=delay)
        await asyncio.sleep(delay)

    async def aclose(self):
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
