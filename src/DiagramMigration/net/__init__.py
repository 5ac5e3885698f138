"""HTTP client construction and retry policies for the vendor API."""

from .client import build_async_client
from .retry import RetryableStatusError, build_retrying, is_retryable

__all__ = ["build_async_client", "build_retrying", "is_retryable", "RetryableStatusError"]
