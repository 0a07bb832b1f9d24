"""Configuration loading, validation, and access."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from edgar13f.core.exceptions import ConfigError
from edgar13f.core.models import FormType, StorageBackend

ENV_PREFIX = "EDGAR13F_"
CONFIG_PATH_ENV = ENV_PREFIX + "CONFIG"
DEFAULT_CONFIG_FILE = "edgar13f.yml"


class EdgarConfig(BaseModel):
    """EDGAR API access configuration."""

    model_config = ConfigDict(frozen=True)

    user_agent: str
    rate_limit: int = 10
    request_timeout: int = 30

    @field_validator("user_agent")
    @classmethod
    def user_agent_has_contact(cls, v: str) -> str:
        """SEC requires user-agent with name and email."""
        if "@" not in v:
            raise ValueError(
                "user_agent must contain an email address per SEC policy. "
                "Example: 'YourName your@email.com'"
            )
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_within_sec_policy(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("rate_limit must be between 1 and 10 (SEC policy)")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/edgar13f.db"


class IngestionConfig(BaseModel):
    """Defaults for ingestion runs. Per-run options override these."""

    model_config = ConfigDict(frozen=True)

    max_concurrent: int = 5
    skip_existing: bool = True
    lookback_days: int = 7
    form_types: list[str] = [FormType.FORM_13F_HR.value, FormType.FORM_13F_HR_A.value]
    position_window: int = 1000
    filer_filing_limit: int = 100
    classify_entries_exits: bool = False
    retry_attempts: int = 0
    retry_backoff: float = 1.0

    @field_validator("max_concurrent")
    @classmethod
    def max_concurrent_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent must be >= 1")
        return v

    @field_validator("lookback_days", "position_window", "filer_filing_limit")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_attempts must be >= 0")
        return v

    @field_validator("form_types")
    @classmethod
    def form_types_upper(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("form_types must not be empty")
        return [ft.strip().upper() for ft in v]


class ScheduleConfig(BaseModel):
    """Interval for the long-running `schedule` command."""

    model_config = ConfigDict(frozen=True)

    interval_minutes: float = 7 * 24 * 60

    @field_validator("interval_minutes")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_minutes must be > 0")
        return v


class LoggingConfig(BaseModel):
    """Root logger configuration applied by the CLI."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def level_known(cls, v: str) -> str:
        upper = v.upper()
        if upper not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return upper


class Edgar13FConfig(BaseModel):
    """Root configuration for edgar13f."""

    model_config = ConfigDict(frozen=True)

    edgar: EdgarConfig
    storage: StorageConfig = StorageConfig()
    ingestion: IngestionConfig = IngestionConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(config_path: str | None = None) -> Edgar13FConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (EDGAR13F_EDGAR__USER_AGENT, etc.)
    2. YAML file: config_path, else $EDGAR13F_CONFIG, else ./edgar13f.yml
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        EDGAR13F_INGESTION__MAX_CONCURRENT=3  ->  ingestion.max_concurrent = 3
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base = _load_yaml(yaml_path) if yaml_path is not None else {}
        return Edgar13FConfig.model_validate(_merge_env_vars(base))
    except ConfigError:
        raise
    except (ValidationError, OSError) as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Pick the YAML file to read, or None when there is none to read."""
    source, candidate = "config_path", explicit
    if candidate is None and os.environ.get(CONFIG_PATH_ENV):
        source, candidate = CONFIG_PATH_ENV, os.environ[CONFIG_PATH_ENV]

    if candidate is None:
        default = Path(DEFAULT_CONFIG_FILE)
        return default if default.is_file() else None

    path = Path(candidate)
    if not path.is_file():
        raise ConfigError(
            f"Config file not found ({source}): {candidate}",
            context={"field": source, "value": candidate},
        )
    return path


def _load_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict) -> dict:
    """Overlay EDGAR13F_* environment variables onto a config dict.

    Double-underscore separates nesting levels; EDGAR13F_CONFIG itself is
    not a setting and is skipped.
    """
    result = dict(base)
    for key, raw in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        *sections, field = key[len(ENV_PREFIX):].lower().split("__")

        target = result
        for section in sections:
            existing = target.get(section)
            if not isinstance(existing, dict):
                existing = {}
                target[section] = existing
            target = existing
        target[field] = _cast_env_value(raw)
    return result


def _cast_env_value(raw: str) -> str | int | float | bool | list[str]:
    """Comma lists become lists; true/false, ints and floats are converted."""
    if "," in raw:
        return [item.strip() for item in raw.split(",") if item.strip()]
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw
