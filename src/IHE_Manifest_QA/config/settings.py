"""Configuration system for the manifest QA engine."""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    level: str = Field(default="WARNING", description="Log level for engine output")
    scrub_fields: Sequence[str] = Field(
        default_factory=lambda: ["patient_name", "patient_id", "PatientName", "PatientID"],
        description="Fields that should be redacted in logs",
    )


class ValidatorSettings(BaseSettings):
    """Top level settings for validation runs and the command line entry-point."""

    service_name: str = "ihe-manifest-qa"
    default_profile: str | None = Field(
        default=None,
        description="Profile applied when the caller does not name one",
    )
    verbose: bool = Field(default=False, description="Include INFO messages in rendered output")
    max_workers: int = Field(default=4, ge=1, le=64, description="Thread pool size for batch runs")
    catalog_path: Path | None = Field(
        default=None,
        description="Override location of the rule catalog YAML document",
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="MQA_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("default_profile")
    @classmethod
    def _blank_profile_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


def load_settings() -> ValidatorSettings:
    """Load settings from the environment, wrapping validation failures."""
    try:
        return ValidatorSettings()
    except ValidationError as err:
        raise RuntimeError(f"Invalid configuration: {err}") from err


@lru_cache(maxsize=1)
def get_settings() -> ValidatorSettings:
    """Cached accessor used by production code."""
    return load_settings()


__all__ = ["LoggingSettings", "ValidatorSettings", "get_settings", "load_settings"]
