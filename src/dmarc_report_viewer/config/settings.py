"""Configuration and environment settings for the report viewer."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImapSettings(BaseSettings):
    """IMAP connection settings for the DMARC report inbox."""

    model_config = SettingsConfigDict(extra="forbid")

    host: Annotated[str, Field(min_length=1)]
    port: Annotated[int, Field(ge=1, le=65535)] = 993
    username: Annotated[str, Field(min_length=1)]
    password: Annotated[str, Field(min_length=1, repr=False)]
    ssl: bool = True

    mailbox: Annotated[str, Field(min_length=1)] = "INBOX"
    timeout_seconds: Annotated[float, Field(gt=0, le=3600)] = 60.0

    @field_validator("host", "mailbox")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        """Strip and reject blank values.

        Args:
            value: Raw setting value.

        Returns:
            Stripped value.

        Raises:
            ValueError: If the value is blank.
        """
        stripped = value.strip()
        if not stripped:
            raise ValueError("value must not be blank")
        return stripped


class SchedulerSettings(BaseSettings):
    """Background update cadence."""

    model_config = SettingsConfigDict(extra="forbid")

    check_interval_seconds: Annotated[int, Field(ge=1, le=7 * 24 * 3600)] = 1800


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(extra="forbid")

    level: Annotated[str, Field(min_length=1)] = "INFO"
    json_logs: bool = False


class AppSettings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DMARC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    imap: ImapSettings | None = None
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(*, env_file: Path | None) -> AppSettings:
    """Load validated settings from environment and optional file.

    Args:
        env_file: Optional .env file path.

    Returns:
        Validated AppSettings instance.
    """
    if env_file is None:
        return AppSettings()
    return AppSettings(_env_file=env_file)  # type: ignore[call-arg]
