"""Configuration loader and settings helpers for dc_ingestor."""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from ..schemas.ingestion import FileFormat
from .retry import RetryConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "DC_INGESTOR_"


def load_yaml_config(config_path: str | Path) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        ConfigurationError: If file not found or invalid YAML
    """
    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration in {config_path} must be a mapping")
    return config


def apply_env_overrides(config: dict[str, Any], prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Override configuration values with environment variables.

    Variables use the prefix and ``__`` for nesting, e.g. ``DC_INGESTOR_RETRY__ENABLED``
    overrides ``config['retry']['enabled']``. The input mapping is not mutated.
    """
    result = _deep_merge_dicts(config, {})
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        keys = key[len(prefix) :].lower().split("__")
        current = result
        for k in keys[:-1]:
            nested = current.get(k)
            if not isinstance(nested, dict):
                nested = {}
                current[k] = nested
            current = nested
        current[keys[-1]] = value

    return result


def _deep_merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries without mutating the inputs."""

    result = {key: (_deep_merge_dicts(value, {}) if isinstance(value, dict) else value)
              for key, value in base.items()}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


class IngestorSettings(BaseSettings):
    """Runtime settings sourced from environment variables, .env files and YAML."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"
    base_url: str = "http://localhost:5000/api/datacloud/ingestion"
    request_timeout_seconds: float = Field(default=600.0, gt=0)
    session_headers: dict[str, str] = Field(default_factory=dict)
    file_format: FileFormat = FileFormat.CSV
    base_directory: str | None = None
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    default_object: str = "WebData"
    default_source_name: str = "DefaultSource"
    abort_profiling_on_failure: bool = True
    abort_upload_on_failure: bool = True
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        """Ensure log level values are uppercase for logging config."""

        return value.upper()

    @field_validator("file_format", mode="before")
    @classmethod
    def _normalize_file_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().lstrip(".")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must be an HTTP(S) URL")
        return value.rstrip("/")

    @field_validator("session_headers", mode="before")
    @classmethod
    def _parse_session_headers(cls, value: Any) -> Any:
        """Accept a JSON object string, as supplied through a YAML-plus-env merge."""

        if isinstance(value, str):
            try:
                return json.loads(value) if value.strip() else {}
            except json.JSONDecodeError as exc:
                raise ValueError("session_headers must be a JSON object") from exc
        return value

    @field_validator("base_directory", mode="before")
    @classmethod
    def _blank_base_directory(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def load_settings(config_path: str | Path | None = None) -> IngestorSettings:
    """Build settings from an optional YAML file, letting environment variables win."""

    config: dict[str, Any] = {}
    if config_path is not None:
        config = load_yaml_config(config_path)
        config = apply_env_overrides(config)
        logger.debug("Loaded configuration file %s with %d top-level keys", config_path, len(config))

    try:
        return IngestorSettings(**config)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Configuration validation failed: {exc}") from exc


@lru_cache(maxsize=1)
def _get_settings_cached() -> IngestorSettings:
    return load_settings()


def get_settings(*, reload: bool = False) -> IngestorSettings:
    """Return cached settings, optionally forcing a reload."""

    if reload:
        _get_settings_cached.cache_clear()
    return _get_settings_cached()
