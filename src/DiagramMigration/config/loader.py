# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.config.loader",
#   "purpose": "Layered migration config: file, then DMIG_ environment, then CLI flags",
#   "sections": [
#     {"id": "read-file", "name": "_read_file", "anchor": "function-read-file", "kind": "function"},
#     {"id": "env-overlay", "name": "_env_overlay", "anchor": "function-env-overlay", "kind": "function"},
#     {"id": "deep-merge", "name": "_deep_merge", "anchor": "function-deep-merge", "kind": "function"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"},
#     {"id": "export-config-schema", "name": "export_config_schema", "anchor": "function-export-config-schema", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Build a :class:`MigrationConfig` from up to three layers.

Later layers win: the YAML/JSON file, then ``DMIG_*`` environment variables,
then the overrides collected from CLI flags. A double underscore in a variable
name descends into a section::

    DMIG_VENDOR__BASE_URL=https://vendor.example   ->  vendor.base_url
    DMIG_LIMITS__CONVERT_WORKERS=3                 ->  limits.convert_workers = 3
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable

import yaml

from .models import MigrationConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "DMIG_"

_PARSERS: dict[str, Callable[[str], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": lambda text: json.loads(text) if text.strip() else None,
}


def _read_file(path: str | Path) -> dict[str, Any]:
    """Parse a config file into a mapping; every failure is a ``ValueError``."""
    p = Path(path)
    parser = _PARSERS.get(p.suffix.lower())
    if parser is None:
        raise ValueError(f"Unsupported config format {p.suffix!r} for {path}; use .yaml or .json")

    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ValueError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ValueError(f"Cannot read config file {path}: {e}") from e

    try:
        data = parser(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return data


def _coerce_env_value(value: str) -> Any:
    # Bare URLs and passwords are not JSON and stay strings
    try:
        return json.loads(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _env_overlay(env_prefix: str) -> dict[str, Any]:
    """Collect prefixed environment variables into a nested mapping."""
    overlay: dict[str, Any] = {}
    for env_key, raw in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue
        *sections, field = env_key[len(env_prefix) :].lower().split("__")
        target = overlay
        for section in sections:
            target = target.setdefault(section, {})
        target[field] = _coerce_env_value(raw)

        dotted = ".".join([*sections, field])
        shown = "***" if "password" in field else repr(target[field])
        _LOGGER.debug("Environment override: %s -> %s = %s", env_key, dotted, shown)
    return overlay


def _deep_merge(base: dict[str, Any], overlay: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge ``overlay`` into ``base`` section by section.

    ``None`` leaves are skipped so an unset CLI flag never clears a value
    supplied by the file or the environment.
    """
    for key, value in (overlay or {}).items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            existing = base.get(key)
            base[key] = _deep_merge(dict(existing) if isinstance(existing, dict) else {}, value)
        else:
            base[key] = value
    return base


def load_config(
    path: str | Path | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> MigrationConfig:
    """Load and validate the migration config.

    Raises:
        ValueError: Unreadable file or invalid settings (pydantic's
            ``ValidationError`` is a ``ValueError``).
    """
    data: dict[str, Any] = {}
    if path:
        data = _read_file(path)
        _LOGGER.info("Loaded config from %s", path)

    data = _deep_merge(data, _env_overlay(env_prefix))
    data = _deep_merge(data, cli_overrides)

    config = MigrationConfig.model_validate(data)
    _LOGGER.debug("Configuration validated (hash %s...)", config.config_hash()[:8])
    return config


def validate_config_file(path: str | Path) -> bool:
    """Return True when ``path`` (plus the environment) yields a valid config."""
    load_config(path=path)
    return True


def export_config_schema() -> dict[str, Any]:
    return MigrationConfig.model_json_schema()
