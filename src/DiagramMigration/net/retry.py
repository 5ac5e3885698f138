"""Tenacity retry strategies for the vendor conversion API.

Provides:
- Retryability classification for httpx exceptions and HTTP statuses
- ``RetryableStatusError`` used to route retryable responses through Tenacity
- ``build_retrying`` producing an ``AsyncRetrying`` controller from RetryPolicy
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from DiagramMigration.config import RetryPolicy

LOGGER = logging.getLogger(__name__)

__all__ = ["RetryableStatusError", "build_retrying", "is_retryable"]


class RetryableStatusError(Exception):
    """Response whose status is in ``RetryPolicy.retry_statuses``."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code} from {response.request.url}")
        self.response = response

    @property
    def status_code(self) -> int:
        return self.response.status_code


def is_retryable(exception: BaseException) -> bool:
    """Determine if a failed vendor call should be retried.

    Retries transient network failures and retryable statuses. Client
    protocol errors (malformed requests) are never retried.
    """
    if isinstance(exception, RetryableStatusError):
        return True
    if isinstance(exception, httpx.LocalProtocolError):
        return False
    return isinstance(
        exception,
        (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
    )


def build_retrying(policy: RetryPolicy, *, logger: Optional[logging.Logger] = None) -> AsyncRetrying:
    """Create an async Tenacity controller for one vendor call.

    Usage:
        async for attempt in build_retrying(policy):
            with attempt:
                response = await client.post(...)

    The last exception is re-raised once attempts are exhausted.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay_s, max=policy.max_delay_s),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger or LOGGER, logging.WARNING),
        reraise=True,
    )
