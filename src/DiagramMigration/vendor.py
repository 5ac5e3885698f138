# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.vendor",
#   "purpose": "Vendor conversion API client: token acquisition and diagram modernization",
#   "sections": [
#     {"id": "conversionclient", "name": "ConversionClient", "anchor": "class-conversionclient", "kind": "class"},
#     {"id": "extract-single-entry", "name": "extract_single_entry", "anchor": "function-extract-single-entry", "kind": "function"},
#     {"id": "vendorclient", "name": "VendorClient", "anchor": "class-vendorclient", "kind": "class"}
#   ]
# }
# === /NAVMAP ===
"""Vendor conversion API client.

Two endpoints are used, both relative to the configured vendor base URL:

``POST vendor/token/v1``
    JSON body ``{"username": ..., "password": ...}``; the response body is the
    bearer token as a plain string.

``POST vendor/diagram/v1/modernize``
    Raw legacy payload as the request body with ``Authorization: Bearer``;
    the response is a zip archive holding exactly one file whose bytes are the
    modernized diagram.

Transient failures (timeouts, connection errors, retryable statuses) are
retried through :func:`DiagramMigration.net.build_retrying`. Anything still
failing is translated into :class:`AuthenticationError` for the token call
and :class:`ConversionError` for a single diagram.
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
import zlib
from typing import Optional, Protocol

import httpx

from DiagramMigration.api import BearerToken, Credentials, Diagram
from DiagramMigration.config import MigrationConfig, RetryPolicy
from DiagramMigration.errors import AuthenticationError, ConversionError
from DiagramMigration.net import RetryableStatusError, build_async_client, build_retrying

__all__ = [
    "MODERNIZE_PATH",
    "TOKEN_PATH",
    "ConversionClient",
    "VendorClient",
    "extract_single_entry",
]

logger = logging.getLogger(__name__)

TOKEN_PATH = "vendor/token/v1"
MODERNIZE_PATH = "vendor/diagram/v1/modernize"


class ConversionClient(Protocol):
    """Capability the converter needs from the vendor API."""

    async def acquire_token(self, credentials: Credentials) -> BearerToken: ...

    async def modernize(self, token: BearerToken, diagram: Diagram) -> Diagram: ...


def extract_single_entry(archive: bytes, *, name: str) -> bytes:
    """Return the bytes of the only file inside a zip ``archive``.

    Directory entries are ignored.

    Raises:
        ConversionError: If the body is not a readable zip or holds zero or
            several files.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            entries = [info for info in zf.infolist() if not info.is_dir()]
            if len(entries) != 1:
                raise ConversionError(
                    f"Expected exactly one entry in converted archive, found {len(entries)}",
                    name=name,
                    details={"entries": [info.filename for info in entries]},
                )
            return zf.read(entries[0])
    except zipfile.BadZipFile as exc:
        raise ConversionError(
            f"Conversion response is not a zip archive: {exc}", name=name
        ) from exc
    except (zlib.error, RuntimeError, NotImplementedError, EOFError, ValueError) as exc:
        # encrypted entries, unsupported compression, truncated or corrupt data
        raise ConversionError(
            f"Converted archive could not be read: {exc}", name=name
        ) from exc


def _parse_token(body: str) -> str:
    token = body.strip()
    if token.startswith('"'):
        # Some gateways JSON-encode the bare string
        try:
            decoded = json.loads(token)
        except json.JSONDecodeError:
            return token
        if isinstance(decoded, str):
            return decoded.strip()
    return token


class VendorClient:
    """Async client for the vendor token and modernize endpoints."""

    def __init__(self, client: httpx.AsyncClient, *, retry: Optional[RetryPolicy] = None) -> None:
        self._client = client
        self._retry = retry or RetryPolicy()

    @classmethod
    def from_config(
        cls,
        config: MigrationConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> VendorClient:
        return cls(build_async_client(config, transport=transport), retry=config.retry)

    async def __aenter__(self) -> VendorClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, **kwargs) -> httpx.Response:
        """POST with retries; retryable statuses surface as RetryableStatusError."""
        retry_statuses = set(self._retry.retry_statuses)
        async for attempt in build_retrying(self._retry, logger=logger):
            with attempt:
                response = await self._client.post(path, **kwargs)
                if response.status_code in retry_statuses:
                    raise RetryableStatusError(response)
        return response

    async def acquire_token(self, credentials: Credentials) -> BearerToken:
        """Log in to the vendor API and return the bearer token.

        Raises:
            AuthenticationError: On any transport failure, error status or empty token.
        """
        try:
            response = await self._post(
                TOKEN_PATH,
                json={"username": credentials.username, "password": credentials.password},
            )
        except RetryableStatusError as exc:
            raise AuthenticationError(
                f"Vendor token request failed: {exc}",
                service="vendor",
                http_status=exc.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthenticationError(
                f"Vendor token request failed: {exc}", service="vendor"
            ) from exc

        if response.is_error:
            raise AuthenticationError(
                f"Vendor token request rejected with HTTP {response.status_code}",
                service="vendor",
                http_status=response.status_code,
            )

        token = _parse_token(response.text)
        if not token:
            raise AuthenticationError("Vendor returned an empty token", service="vendor")

        logger.info("Acquired vendor token for %s", credentials.username)
        return BearerToken(token)

    async def modernize(self, token: BearerToken, diagram: Diagram) -> Diagram:
        """Convert one legacy diagram.

        Raises:
            ConversionError: If the call fails or the archive is unusable.
        """
        try:
            response = await self._post(
                MODERNIZE_PATH,
                content=diagram.payload,
                headers={**token.headers(), "Content-Type": "application/octet-stream"},
            )
        except RetryableStatusError as exc:
            raise ConversionError(
                f"Conversion failed: {exc}", name=diagram.name, http_status=exc.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise ConversionError(f"Conversion request failed: {exc}", name=diagram.name) from exc

        if response.is_error:
            raise ConversionError(
                f"Conversion rejected with HTTP {response.status_code}",
                name=diagram.name,
                http_status=response.status_code,
            )

        converted = extract_single_entry(response.content, name=diagram.name)
        logger.debug(
            "Converted %r (%d -> %d bytes)",
            diagram.name,
            len(diagram.payload),
            len(converted),
            extra={"extra_fields": {"diagram": diagram.name, "phase": "convert"}},
        )
        return diagram.with_payload(converted)
