"""
Pydantic v2 Configuration Models for Diagram Migration

Provides strict, typed configuration for every pipeline subsystem:
- Vendor conversion API (base URL, credentials, timeouts)
- Target web application (base URL, credentials, browser behaviour)
- Upload form selectors and submitted file metadata
- Dataset record fields
- Paths, concurrency limits, deadlines, retry, progress and logging
- Top-level MigrationConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

from typing import Any, ClassVar, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from DiagramMigration.api import Credentials
from DiagramMigration.errors import ConfigurationError


def _stringify_scalar(v: Any) -> Any:
    """Env coercion turns numeric passwords into ints; credentials are always text."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


def _strip_trailing_slash(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        return None
    return v.rstrip("/")


# ============================================================================
# Remote Endpoints
# ============================================================================


class VendorConfig(BaseModel):
    """Conversion API endpoint, credentials and HTTP client behaviour."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    base_url: Optional[str] = Field(default=None, description="Vendor API base URL")
    username: Optional[str] = Field(default=None, description="Vendor user name")
    password: Optional[SecretStr] = Field(default=None, description="Vendor password")
    user_agent: str = Field(default="DiagramMigration/1.0", description="User-Agent string")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=120.0, description="Read timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        return _strip_trailing_slash(v)

    @field_validator("username", "password", mode="before")
    @classmethod
    def coerce_credentials(cls, v: Any) -> Any:
        return _stringify_scalar(v)

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v


class TargetConfig(BaseModel):
    """Target web application reached through the browser."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    base_url: Optional[str] = Field(default=None, description="Target application base URL")
    username: Optional[str] = Field(default=None, description="Target user name")
    password: Optional[SecretStr] = Field(default=None, description="Target password")
    headless: bool = Field(default=True, description="Run the browser headless")
    action_timeout_ms: int = Field(
        default=30_000, description="Default timeout for each navigation/fill/click"
    )
    state_path: str = Field(default="state.json", description="Session snapshot file")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        return _strip_trailing_slash(v)

    @field_validator("username", "password", mode="before")
    @classmethod
    def coerce_credentials(cls, v: Any) -> Any:
        return _stringify_scalar(v)

    @field_validator("action_timeout_ms")
    @classmethod
    def validate_action_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("action_timeout_ms must be > 0")
        return v


class UploadFormConfig(BaseModel):
    """Login and upload form selectors plus submitted file metadata."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    username_selector: str = Field(default="input[name=Username]")
    password_selector: str = Field(default="input[name=Password]")
    login_selector: str = Field(default="text=Login")
    upload_path: str = Field(default="/Agency", description="Upload form path under base_url")
    group_selector: str = Field(default="#Group")
    name_selector: str = Field(default="#Name")
    file_selector: str = Field(default="input#File")
    submit_selector: str = Field(default="text=Upload")
    group: str = Field(default="Templates", description="Group/category filled on every upload")
    filename: str = Field(default="template.sce", description="Declared upload filename")
    mime_type: str = Field(default="application/octet-stream", description="Declared MIME type")

    @field_validator("upload_path")
    @classmethod
    def validate_upload_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"


# ============================================================================
# Input & Output
# ============================================================================


class RecordsConfig(BaseModel):
    """Field names of the DataSet XML rows."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    table: str = Field(default="DEPICTION_TB", description="Row element name")
    name_field: str = Field(default="SHORT_NAME", description="Primary name field")
    fallback_field: str = Field(
        default="DESCRIPTION", description="Name field used when the primary one is empty"
    )
    payload_field: str = Field(default="DIAGRAM", description="Base64 payload field")


class PathsConfig(BaseModel):
    """Local files consulted and produced by a run."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    input_file: Optional[str] = Field(default=None, description="DataSet XML file")
    output_dir: str = Field(default="converted", description="Converted artifact directory")
    summary_path: Optional[str] = Field(
        default=None, description="Write the run summary JSON here when set"
    )


class LimitsConfig(BaseModel):
    """Concurrency caps, deadlines and record limits."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    convert_workers: int = Field(default=5, description="Max concurrent conversion calls")
    upload_workers: int = Field(default=5, description="Max concurrent upload sessions")
    run_deadline_s: Optional[float] = Field(
        default=3600.0, description="Overall deadline for both phases (None = unlimited)"
    )
    max_records: Optional[int] = Field(
        default=None, description="Only process the first N records (None = all)"
    )

    @field_validator("convert_workers", "upload_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("worker counts must be >= 1")
        return v

    @field_validator("run_deadline_s")
    @classmethod
    def validate_deadline(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("run_deadline_s must be > 0 or None")
        return v

    @field_validator("max_records")
    @classmethod
    def validate_max_records(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("max_records must be >= 1 or None")
        return v


# ============================================================================
# Shared Policy Models
# ============================================================================


class RetryPolicy(BaseModel):
    """Configuration for conversion API retry behavior."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    retry_statuses: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    max_attempts: int = Field(default=3, description="Maximum attempts per call")
    base_delay_s: float = Field(default=0.5, description="Exponential backoff multiplier")
    max_delay_s: float = Field(default=10.0, description="Maximum delay between attempts")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("base_delay_s", "max_delay_s")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delay values must be >= 0")
        return v


class ProgressConfig(BaseModel):
    """Which worker event advances each phase's progress bar."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    convert_advance_on: Literal["completion", "dispatch"] = Field(default="completion")
    upload_advance_on: Literal["completion", "dispatch"] = Field(default="completion")


class LoggingConfig(BaseModel):
    """Configuration for console and rotating JSON file logging."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Write JSON log files")
    level: str = Field(default="INFO", description="Log level")
    log_dir: str = Field(default="logs", description="Log directory")
    retention_days: int = Field(default=30, description="Compress/delete logs older than this")
    max_log_size_mb: int = Field(default=100, description="Rotate log files at this size")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"Invalid level: {v}. Must be in {sorted(valid)}")
        return upper

    @field_validator("retention_days", "max_log_size_mb")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Must be > 0")
        return v


# ============================================================================
# Top-Level Configuration
# ============================================================================


class MigrationConfig(BaseModel):
    """
    Single source of truth for Diagram Migration configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    run_id: Optional[str] = Field(
        default=None, description="Unique run identifier for traceability"
    )
    vendor: VendorConfig = Field(default_factory=VendorConfig, description="Conversion API")
    target: TargetConfig = Field(default_factory=TargetConfig, description="Target application")
    upload_form: UploadFormConfig = Field(
        default_factory=UploadFormConfig, description="Upload form selectors"
    )
    records: RecordsConfig = Field(default_factory=RecordsConfig, description="Dataset fields")
    paths: PathsConfig = Field(default_factory=PathsConfig, description="Local paths")
    limits: LimitsConfig = Field(default_factory=LimitsConfig, description="Limits")
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Retry policy")
    progress: ProgressConfig = Field(default_factory=ProgressConfig, description="Progress")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging")

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Secrets are dumped masked, so the hash never depends on passwords.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        import hashlib
        import json

        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()

    def vendor_credentials(self) -> Credentials:
        """Return vendor API credentials or raise ConfigurationError."""
        return _credentials("vendor", self.vendor.username, self.vendor.password)

    def target_credentials(self) -> Credentials:
        """Return target application credentials or raise ConfigurationError."""
        return _credentials("target", self.target.username, self.target.password)

    def require_remote(self) -> None:
        """Raise ConfigurationError unless both base URLs are configured."""
        missing = [
            name
            for name, value in (("vendor.base_url", self.vendor.base_url), ("target.base_url", self.target.base_url))
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")


def _credentials(
    section: str, username: Optional[str], password: Optional[SecretStr]
) -> Credentials:
    if not username or password is None:
        raise ConfigurationError(f"{section} credentials are not configured")
    return Credentials(username=username, password=password.get_secret_value())
