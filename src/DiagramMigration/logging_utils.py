"""Structured logging helpers shared across diagram migration components."""

from __future__ import annotations

import gzip
import json
import logging
import re
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

ROOT_LOGGER_NAME = "DiagramMigration"

_SENSITIVE_KEYS = {"authorization", "token", "password", "secret", "cookie", "cookies"}
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9+/=_.-]{32,}$")


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential-like fields masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(_mask_value(item, key_hint) for item in value)
        if isinstance(value, str):
            if key_hint in _SENSITIVE_KEYS:
                return "***masked***"
            lowered = value.lower()
            if "bearer " in lowered:
                return "***masked***"
            if key_hint == "authorization" and _TOKEN_PATTERN.match(value.strip()):
                return "***masked***"
        return value

    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries for migration runs."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with migration-specific fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", None),
            "diagram": getattr(record, "diagram", None),
            "phase": getattr(record, "phase", None),
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _compress_old_log(path: Path) -> None:
    """Compress ``path`` into a ``.gz`` file and remove the original."""

    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Compress or purge log files in ``log_dir`` based on retention policy."""

    actions: List[str] = []
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
            actions.append(f"Compressed {file.name}")
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {file.name}")
    return actions


def setup_logging(
    *,
    level: str = "INFO",
    enable_file: bool = False,
    log_dir: Optional[Path] = None,
    retention_days: int = 30,
    max_log_size_mb: int = 100,
    console_level: Optional[str] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure migration logging: console output plus optional rotating JSON files.

    The console handler writes to stderr so it never interleaves with the
    progress bars rendered on stdout. File logging writes one JSON object per
    line to ``migrate-YYYYMMDD.jsonl`` under ``log_dir`` (default ``logs``).
    Repeated calls replace the handlers installed by earlier calls.
    """

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_migration_managed", False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console_handler.setLevel(getattr(logging, (console_level or "WARNING").upper(), logging.WARNING))
    console_handler._migration_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    if enable_file:
        resolved_dir = log_dir or Path("logs")
        resolved_dir.mkdir(parents=True, exist_ok=True)
        for action in _cleanup_logs(resolved_dir, retention_days):
            logger.debug(action)

        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            resolved_dir / f"migrate-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._migration_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
