"""
Diagram Migration Configuration Package

Public API for loading, validating, and introspecting migration configuration.

Example:
    from DiagramMigration.config import load_config

    config = load_config(
        path="migration.yaml",
        cli_overrides={"limits": {"convert_workers": 3}},
    )
    config_id = config.config_hash()
"""

from .loader import (
    DEFAULT_ENV_PREFIX,
    export_config_schema,
    load_config,
    validate_config_file,
)
from .models import (
    LimitsConfig,
    LoggingConfig,
    MigrationConfig,
    PathsConfig,
    ProgressConfig,
    RecordsConfig,
    RetryPolicy,
    TargetConfig,
    UploadFormConfig,
    VendorConfig,
)

__all__ = [
    # Models
    "MigrationConfig",
    "VendorConfig",
    "TargetConfig",
    "UploadFormConfig",
    "RecordsConfig",
    "PathsConfig",
    "LimitsConfig",
    "RetryPolicy",
    "ProgressConfig",
    "LoggingConfig",
    # Loading/validation
    "DEFAULT_ENV_PREFIX",
    "load_config",
    "validate_config_file",
    "export_config_schema",
]
