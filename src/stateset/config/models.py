"""Configuration models using Pydantic."""

import logging
import os
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator

from stateset.config.paths import get_system_timezone

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"


class ConfigError(Exception):
    """Configuration error."""

    pass


class ModelConfig(BaseModel):
    """Configuration for a named model.

    Temperature is optional - if None, the provider's default is used.
    """

    provider: Literal["anthropic"] = "anthropic"
    model: str
    temperature: float | None = None
    max_tokens: int = 4096
    # Number of prior messages replayed from the session store on each chat
    history_messages: int = Field(default=40, ge=0)


class ProviderConfig(BaseModel):
    """Provider-level configuration."""

    api_key: SecretStr | None = None


class SentryConfig(BaseModel):
    """Configuration for Sentry error reporting."""

    dsn: SecretStr | None = None
    environment: str = "production"
    release: str | None = None
    traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    profiles_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    send_default_pii: bool = False
    debug: bool = False


class EventsConfig(BaseModel):
    """Tunables for the events runner.

    Durations are in seconds. The defaults are the values the runner is
    designed around; tests shrink them to keep wall-clock time low.
    """

    default_session: str = "default"
    show_usage: bool = False
    stdout: bool = False

    # Runner pool
    max_runners: int = Field(default=16, gt=0)
    max_pending_per_runner: int = Field(default=32, gt=0)
    idle_ttl_seconds: float = Field(default=900.0, gt=0)
    cleanup_interval_seconds: float = Field(default=300.0, gt=0)
    dispatch_retry_seconds: float = Field(default=1.0, gt=0)

    # Scheduling
    one_shot_poll_seconds: float = Field(default=1.0, gt=0)

    # Watcher
    debounce_seconds: float = Field(default=0.1, gt=0)
    watcher_restart_seconds: float = Field(default=2.0, gt=0)

    # Parsing
    parse_attempts: int = Field(default=3, gt=0)
    parse_retry_base_seconds: float = Field(default=0.1, gt=0)
    max_event_file_bytes: int = Field(default=1_048_576, gt=0)


def _default_models() -> dict[str, ModelConfig]:
    return {"default": ModelConfig(model=DEFAULT_MODEL)}


class StatesetConfig(BaseModel):
    """Root configuration model."""

    models: dict[str, ModelConfig] = Field(default_factory=_default_models)
    anthropic: ProviderConfig | None = None
    timezone: str = Field(default_factory=get_system_timezone)
    events: EventsConfig = Field(default_factory=EventsConfig)
    sentry: SentryConfig | None = None

    @model_validator(mode="after")
    def _validate_default_model(self) -> "StatesetConfig":
        """Validate that a default model is configured."""
        if "default" not in self.models:
            raise ValueError("No default model configured. Add [models.default]")
        return self

    def get_model(self, alias: str) -> ModelConfig:
        """Get model config by alias.

        Raises:
            ConfigError: If the alias is not found.
        """
        if alias not in self.models:
            available = ", ".join(sorted(self.models.keys()))
            raise ConfigError(
                f"Unknown model alias '{alias}'. Available: {available}"
            )
        return self.models[alias]

    def list_models(self) -> list[str]:
        """List available model aliases."""
        return sorted(self.models.keys())

    @property
    def default_model(self) -> ModelConfig:
        return self.get_model("default")

    def resolve_api_key(self) -> SecretStr | None:
        """Resolve the Anthropic API key.

        Resolution order:
        1. [anthropic] api_key in config
        2. ANTHROPIC_API_KEY environment variable
        """
        if self.anthropic and self.anthropic.api_key:
            return self.anthropic.api_key

        env_value = os.environ.get("ANTHROPIC_API_KEY")
        if env_value:
            return SecretStr(env_value)

        return None
