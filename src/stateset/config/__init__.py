"""Configuration module."""

from stateset.config.loader import get_default_config, load_config
from stateset.config.models import (
    ConfigError,
    EventsConfig,
    ModelConfig,
    ProviderConfig,
    SentryConfig,
    StatesetConfig,
)
from stateset.config.paths import (
    get_config_path,
    get_events_path,
    get_sessions_path,
    get_stateset_home,
)

__all__ = [
    "ConfigError",
    "EventsConfig",
    "ModelConfig",
    "ProviderConfig",
    "SentryConfig",
    "StatesetConfig",
    "get_config_path",
    "get_default_config",
    "get_events_path",
    "get_sessions_path",
    "get_stateset_home",
    "load_config",
]
