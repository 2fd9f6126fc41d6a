"""
Application settings domain models.

Typed, validated configuration for every component of the sync service.
Values come from ``config/appsettings.json`` (see ConfigLoader) with
secrets optionally overridden from the environment.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

_COLUMN_RE = re.compile(r"^[A-Za-z]{1,3}$")

DEFAULT_FACILITY_MAP: dict[str, int] = {
    "ふじみの": 7,
    "みさと": 10,
    "いちかわ": 14,
}


class WorkbookSettings(BaseModel):
    """Where workbooks live and how to read them."""

    model_config = ConfigDict(extra="forbid")

    base_path: str = Field(default="", description="Root of the shared workbook store")
    file_pattern: str = Field(default="*.xlsm", description="Glob matched recursively")
    sheet_name: str = Field(default="予約表", description="Preferred worksheet name")
    date_column: str = Field(default="A", description="Column holding the calendar date")
    count_column: str | None = Field(
        default="CH",
        description="Column holding the daily count; None means right of the date column",
    )
    facility_map: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_FACILITY_MAP),
        description="Filename substring -> facility id, first match wins",
    )
    tenant_id: int = Field(default=1, ge=1)
    lock_timeout_seconds: float = Field(default=1.0, gt=0, le=60)
    max_parallel_files: int = Field(default=5, ge=1, le=32)

    @field_validator("date_column", "count_column")
    @classmethod
    def validate_column_letters(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not _COLUMN_RE.match(v):
            raise ValueError(f"Column must be 1-3 letters, got {v!r}")
        return v.upper()

    @field_validator("facility_map")
    @classmethod
    def validate_facility_ids(cls, v: dict[str, int]) -> dict[str, int]:
        for name, facility_id in v.items():
            if not name:
                raise ValueError("Facility map keys must be non-empty")
            if facility_id <= 0:
                raise ValueError(f"Facility id for {name!r} must be positive")
        return v


class RemoteStoreSettings(BaseModel):
    """PostgREST endpoint of the reservation table."""

    model_config = ConfigDict(extra="forbid")

    url: str = ""
    key: str = Field(default="", repr=False)
    table_name: str = "room_reservations"
    batch_size: int = Field(default=50, ge=1, le=1000)
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class LineWorksSettings(BaseModel):
    """LINE WORKS bot credentials and endpoints."""

    model_config = ConfigDict(extra="forbid")

    bot_id: str = ""
    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    token_url: str = "https://auth.worksmobile.com/oauth2/v2.0/token"
    message_url: str = "https://www.worksapis.com/v1.0/bots/{bot_id}/channels/default/messages"
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        le=120,
        description="None picks 30s interactively, 15s as a service",
    )
    max_attempts: int = Field(default=2, ge=1, le=5)


class ProofListSettings(BaseModel):
    """Audit CSV output."""

    model_config = ConfigDict(extra="forbid")

    output_directory: str = "./proofs"
    retention_days: int = Field(default=180, ge=1, le=3650)
    enable_auto_cleanup: bool = True


class RetrySettings(BaseModel):
    """Backoff retry parameters."""

    model_config = ConfigDict(extra="forbid")

    retry_count: int = Field(default=3, ge=0, le=10)
    initial_delay_seconds: float = Field(default=1.0, ge=0, le=60)
    max_delay_seconds: float = Field(default=5.0, ge=0, le=300)

    @field_validator("max_delay_seconds")
    @classmethod
    def validate_cap(cls, v: float, info) -> float:
        initial = info.data.get("initial_delay_seconds")
        if initial is not None and v < initial:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        return v


class CacheSettings(BaseModel):
    """Fingerprint cache sizing."""

    model_config = ConfigDict(extra="forbid")

    ttl_minutes: float = Field(default=60, gt=0)
    cleanup_interval_minutes: float = Field(default=15, gt=0)
    max_items: int = Field(default=1000, ge=1)


class ServiceSettings(BaseModel):
    """Orchestration loop timing and thresholds."""

    model_config = ConfigDict(extra="forbid")

    polling_interval_minutes: float = Field(default=5, gt=0, le=1440)
    cycle_timeout_seconds: float = Field(default=240, gt=0)
    max_consecutive_failures: int = Field(default=3, ge=1, le=100)
    failure_notification_interval_minutes: float = Field(default=10, ge=0)
    health_check_interval_minutes: float = Field(default=60, gt=0)
    shutdown_grace_seconds: float = Field(default=15, ge=0, le=300)
    min_free_disk_gb: float = Field(default=1.0, ge=0)

    @field_validator("cycle_timeout_seconds")
    @classmethod
    def warn_long_cycle(cls, v: float) -> float:
        if v > 3600:
            logger.warning("Cycle timeout of %ss is very high - a hung cycle blocks polling", v)
        return v


class LoggingSettings(BaseModel):
    """Log level and optional file target."""

    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    log_file: str | None = "logs/vacancysync.log"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class AppSettings(BaseModel):
    """Root configuration object."""

    model_config = ConfigDict(extra="forbid")

    application_name: str = "vacancysync"
    workbook: WorkbookSettings = Field(default_factory=WorkbookSettings)
    remote_store: RemoteStoreSettings = Field(default_factory=RemoteStoreSettings)
    lineworks: LineWorksSettings = Field(default_factory=LineWorksSettings)
    proof_list: ProofListSettings = Field(default_factory=ProofListSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
