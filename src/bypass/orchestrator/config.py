"""Configuration for the bulk-creation CLI.

Configuration is loaded from, highest priority first:
- explicit keyword arguments (the CLI `--token` flag)
- environment variables
- a local `.env` file (if present)
- the user config file `$XDG_CONFIG_HOME/bypass/config.yaml`
  (default `~/.config/bypass/config.yaml`)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_BASE_URL = "https://api.app.shortcut.com/api/v3"


def config_file_path() -> Path:
    """Location of the optional YAML config file."""

    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    config_dir = Path(base) if base else Path.home() / ".config"
    return config_dir / "bypass" / "config.yaml"


class BypassSettings(BaseSettings):
    """Settings for a bulk-creation run.

    Environment variables:
    - SHORTCUT_API_TOKEN
    - SHORTCUT_BASE_URL                 (optional)
    - SHORTCUT_REQUEST_TIMEOUT_SECONDS  (optional)
    - LOG_LEVEL                         (optional)

    The YAML config file uses the field names (`api_token`, `base_url`, ...).
    """

    api_token: str = Field(
        default="",
        description="Shortcut API token used for the Shortcut-Token header",
    )
    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Shortcut REST API base URL",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout; retries get their own timeout",
    )

    log_level: str = Field(
        default="WARNING",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
        description="Root logging level (logs go to stderr)",
    )

    model_config = SettingsConfigDict(
        env_prefix="SHORTCUT_",
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_file_path()),
            file_secret_settings,
        )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value!r}")
        return level

    @model_validator(mode="after")
    def _require_api_token(self) -> BypassSettings:
        if not self.api_token.strip():
            raise ValueError(
                "No API token found. Provide it via --token <TOKEN>, the "
                "SHORTCUT_API_TOKEN environment variable, or "
                f"{config_file_path()} (field: api_token)"
            )
        return self
