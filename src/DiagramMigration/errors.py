# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.errors",
#   "purpose": "Error taxonomy and logging helpers for the diagram migration pipeline.",
#   "sections": [
#     {
#       "id": "migrationerror",
#       "name": "MigrationError",
#       "anchor": "class-migrationerror",
#       "kind": "class"
#     },
#     {
#       "id": "diagramerror",
#       "name": "DiagramError",
#       "anchor": "class-diagramerror",
#       "kind": "class"
#     },
#     {
#       "id": "get-actionable-error-message",
#       "name": "get_actionable_error_message",
#       "anchor": "function-get-actionable-error-message",
#       "kind": "function"
#     },
#     {
#       "id": "log-diagram-failure",
#       "name": "log_diagram_failure",
#       "anchor": "function-log-diagram-failure",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy and logging helpers for the diagram migration pipeline.

Responsibilities
----------------
- Define the fatal error kinds (``AuthenticationError``, ``RecordLoadError``,
  ``FilesystemError``, ``DeadlineExceededError``, ``ConfigurationError``) that
  abort a run with a non-zero exit.
- Define the per-diagram error kinds (``ConversionError``, ``UploadError``)
  that are isolated to one diagram and aggregated into the run report.
- Translate HTTP status codes into user-friendly remediation hints via
  :func:`get_actionable_error_message`.
- Centralise structured failure logging through :func:`log_diagram_failure`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

__all__ = (
    "MigrationError",
    "ConfigurationError",
    "AuthenticationError",
    "RecordLoadError",
    "FilesystemError",
    "DeadlineExceededError",
    "DiagramError",
    "ConversionError",
    "UploadError",
    "FATAL_ERRORS",
    "get_actionable_error_message",
    "log_diagram_failure",
)

LOGGER = logging.getLogger(__name__)


class MigrationError(Exception):
    """Base class for every error raised by the migration pipeline."""


class ConfigurationError(MigrationError):
    """Raised when required configuration (credentials, paths) is missing or invalid."""


class AuthenticationError(MigrationError):
    """Raised when the vendor token or the target login cannot be obtained."""

    def __init__(self, message: str, *, service: str, http_status: int | None = None):
        super().__init__(message)
        self.service = service
        self.http_status = http_status


class RecordLoadError(MigrationError):
    """Raised when the input dataset cannot be read or a record is malformed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | str | None = None,
        record_index: int | None = None,
    ):
        super().__init__(message)
        self.path = Path(path) if path is not None else None
        self.record_index = record_index


class FilesystemError(MigrationError):
    """Raised when the output directory cannot be created, read or written."""

    def __init__(self, message: str, *, path: Path | str):
        super().__init__(message)
        self.path = Path(path)


class DeadlineExceededError(MigrationError):
    """Raised when the overall run deadline expires."""

    def __init__(self, message: str, *, deadline_s: float):
        super().__init__(message)
        self.deadline_s = deadline_s


class DiagramError(MigrationError):
    """Failure scoped to a single diagram; never cancels sibling work."""

    def __init__(
        self,
        message: str,
        *,
        name: str,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.name = name
        self.http_status = http_status
        self.details = details or {}


class ConversionError(DiagramError):
    """The conversion API call failed or returned an unusable archive."""


class UploadError(DiagramError):
    """The upload form submission failed for one diagram."""


FATAL_ERRORS: tuple[type[MigrationError], ...] = (
    ConfigurationError,
    AuthenticationError,
    RecordLoadError,
    FilesystemError,
    DeadlineExceededError,
)


def get_actionable_error_message(http_status: int | None) -> tuple[str, str | None]:
    """Generate user-friendly error message with actionable suggestions.

    Args:
        http_status: HTTP status code from the failed request, if any

    Returns:
        Tuple of (error_message, suggestion) where suggestion may be None

    Examples:
        >>> msg, suggestion = get_actionable_error_message(401)
        >>> print(msg)
        Authentication required (HTTP 401)
    """

    if http_status == 401:
        return (
            "Authentication required (HTTP 401)",
            "Check the vendor username/password; the bearer token may have expired",
        )
    elif http_status == 403:
        return (
            "Access forbidden (HTTP 403)",
            "The vendor account is not allowed to use the modernize endpoint",
        )
    elif http_status == 404:
        return (
            "Endpoint not found (HTTP 404)",
            "Check the --api base URL; it must point at the vendor API root",
        )
    elif http_status == 413:
        return (
            "Payload too large (HTTP 413)",
            "The legacy diagram exceeds the vendor's request size limit",
        )
    elif http_status == 429:
        return (
            "Rate limit exceeded (HTTP 429)",
            "Lower limits.convert_workers or raise the retry delays",
        )
    elif http_status == 500:
        return (
            "Server error (HTTP 500)",
            "The vendor failed to convert this diagram. Retry later or inspect the legacy payload.",
        )
    elif http_status == 502 or http_status == 503:
        return (
            f"Service temporarily unavailable (HTTP {http_status})",
            "The vendor API is overloaded. Rerun later; converted diagrams are skipped.",
        )
    elif http_status == 504:
        return (
            "Gateway timeout (HTTP 504)",
            "Increase vendor.timeout_read_s or retry later",
        )
    elif http_status and http_status >= 400:
        return (
            f"HTTP error {http_status}",
            "Check vendor API logs or network connectivity for more details",
        )

    return (
        "Diagram failed",
        "Check logs for detailed error information and rerun; completed diagrams are skipped.",
    )


def log_diagram_failure(
    logger: logging.Logger,
    error: DiagramError,
    *,
    phase: str,
) -> None:
    """Log a per-diagram failure with structured context and a suggestion.

    Args:
        logger: Logger instance to use for output
        error: The per-diagram error
        phase: Pipeline phase ("convert" or "upload")
    """

    error_msg, suggestion = get_actionable_error_message(error.http_status)

    log_entry: dict[str, Any] = {
        "diagram": error.name,
        "phase": phase,
        "http_status": error.http_status,
        "error_message": error_msg,
        "exception_type": type(error).__name__,
        "exception_message": str(error),
    }
    if error.details:
        log_entry["details"] = error.details
    cause = error.__cause__
    if cause is not None:
        log_entry["cause_type"] = type(cause).__name__
        log_entry["cause_message"] = str(cause)

    logger.error(
        "%s failed for %r: %s", phase.capitalize(), error.name, error, extra={"extra_fields": log_entry}
    )

    if suggestion:
        logger.info(
            "Suggestion: %s",
            suggestion,
            extra={"extra_fields": {"diagram": error.name, "phase": phase}},
        )
