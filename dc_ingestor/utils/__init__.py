"""Utilities package initialization."""
from .config import (
    IngestorSettings,
    apply_env_overrides,
    get_settings,
    load_settings,
    load_yaml_config,
)
from .logging import log_phase_event, setup_logger

__all__ = [
    "IngestorSettings",
    "apply_env_overrides",
    "get_settings",
    "load_settings",
    "load_yaml_config",
    "log_phase_event",
    "setup_logger",
]
