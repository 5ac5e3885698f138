"""
HTTPX AsyncClient factory for the vendor conversion API.

- Explicit timeouts and pool limits sized to the conversion worker pool
- Base URL bound once so callers only pass endpoint paths
- Structured event hooks that log each request/response at DEBUG
- Injectable transport (``httpx.MockTransport`` in tests)
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from DiagramMigration.config import MigrationConfig

logger = logging.getLogger(__name__)

__all__ = ["build_async_client"]


# ============================================================================
# Client Construction
# ============================================================================


def build_async_client(
    config: MigrationConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build an AsyncClient bound to ``config.vendor.base_url``.

    Args:
        config: Migration configuration
        transport: Optional transport override

    Returns:
        Configured ``httpx.AsyncClient``; the caller owns and closes it.
    """
    cfg = config.vendor

    timeout = httpx.Timeout(cfg.timeout_read_s, connect=cfg.timeout_connect_s)

    # One connection per conversion worker plus one for the token call
    workers = config.limits.convert_workers
    limits = httpx.Limits(max_connections=workers + 1, max_keepalive_connections=workers)

    client = httpx.AsyncClient(
        base_url=cfg.base_url or "",
        transport=transport,
        timeout=timeout,
        limits=limits,
        verify=cfg.verify_tls,
        headers={
            "User-Agent": cfg.user_agent,
            "Accept": "*/*",
        },
        follow_redirects=True,
        event_hooks={"request": [_on_request], "response": [_on_response]},
    )
    logger.debug(f"Built HTTPX AsyncClient for {cfg.base_url} (workers={workers})")
    return client


# ============================================================================
# Event Hooks
# ============================================================================


async def _on_request(request: httpx.Request) -> None:
    """Log outgoing request (authorization header is never logged)."""
    logger.debug(
        "net.request",
        extra={
            "extra_fields": {
                "method": request.method,
                "url": str(request.url),
                "content_length": request.headers.get("Content-Length"),
            }
        },
    )


async def _on_response(response: httpx.Response) -> None:
    """Log response status for each attempt."""
    request = response.request
    logger.debug(
        "net.response",
        extra={
            "extra_fields": {
                "method": request.method,
                "url": str(request.url),
                "status": response.status_code,
                "content_type": response.headers.get("Content-Type"),
            }
        },
    )
