"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup
  - Keep secrets out of source control

Only AppSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated via env_nested_delimiter="__", so the env var
DATABASE__HOST maps to database.host, NUMBERING__PREFIX to numbering.prefix,
DOCUMENTS__URL to documents.url, etc.

With STORAGE_BACKEND=memory nothing external is required; the postgres
backend needs database settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from evisa_lifecycle.domain.numbering import DEFAULT_PREFIX, DEFAULT_SEQUENCE_WIDTH

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string via DATABASE__DSN or individual
    components (host, port, name, username, password). The DSN takes
    priority when both are provided.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )
    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build `dsn` from the components when no full DSN was given."""
        if self.dsn is not None:
            return self
        missing = [
            f
            for f, v in [
                ("DATABASE__HOST", self.host),
                ("DATABASE__NAME", self.name),
                ("DATABASE__USERNAME", self.username),
                ("DATABASE__PASSWORD", self.password),
            ]
            if not v
        ]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class NumberingSettings(BaseModel):
    """Application number layout: <prefix><year><sequence zero-padded to width>."""

    prefix: str = Field(default=DEFAULT_PREFIX, pattern=r"^[A-Z]{1,10}$")
    width: int = Field(default=DEFAULT_SEQUENCE_WIDTH, ge=1, le=12)


class DocumentServiceSettings(BaseModel):
    """Document storage collaborator; unset means the in-process store."""

    url: str | None = Field(default=None, description="Base URL of the document storage service")


class NotificationSettings(BaseModel):
    """Notification collaborator; unset means events are only logged."""

    url: str | None = Field(default=None, description="Webhook receiving lifecycle events")


class SchedulerSettings(BaseModel):
    """
    Statistics refresh schedule as a standard 5-field cron expression.

    Format: minute hour day-of-month month day-of-week
    Examples:
      "0 * * * *"    — hourly (default)
      "0 2 * * *"    — daily at 02:00
      "*/15 * * * *" — every 15 minutes
    """

    cron: str = Field(
        default="0 * * * *",
        description="Cron expression (5 fields: minute hour dom month dow)",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    storage_backend: Literal["postgres", "memory"] = "memory"
    database: DatabaseSettings | None = None
    numbering: NumberingSettings = Field(default_factory=NumberingSettings)
    documents: DocumentServiceSettings = Field(default_factory=DocumentServiceSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    http_timeout_seconds: int = Field(default=30, ge=1)
    run_on_startup: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    @model_validator(mode="after")
    def require_database_for_postgres(self) -> AppSettings:
        if self.storage_backend == "postgres" and self.database is None:
            raise ValueError("STORAGE_BACKEND=postgres requires DATABASE__* settings")
        return self
