"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .market.broadcaster import DEFAULT_SEND_TIMEOUT, StreamMode
from .market.trading212 import DEFAULT_BASE_URL
from .net import DEFAULT_PROXY_PRESET, PROXY_HEADERS

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Settings are missing or invalid; the service cannot start."""


class Settings(BaseSettings):
    """All config from environment. Never hardcode secrets."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Trading 212 credentials (required)
    trading212_api_key: str = Field(min_length=1)
    trading212_api_secret: str = Field(min_length=1)
    trading212_base_url: str = Field(default=DEFAULT_BASE_URL)
    request_timeout: float = Field(default=15.0, gt=0)

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3000)

    # Polling (milliseconds)
    refresh_interval_ms: int = Field(default=10_000, gt=0)
    min_refresh_interval_ms: int = Field(default=5_000, ge=0)
    instruments_refresh_interval_ms: int = Field(default=0, ge=0)  # 0 = load once at startup

    # Streaming
    stream_mode: StreamMode = Field(default=StreamMode.INTERACTIVE)
    proxy_preset: str = Field(default=DEFAULT_PROXY_PRESET)
    send_timeout: float = Field(default=DEFAULT_SEND_TIMEOUT, gt=0)  # seconds per subscriber frame

    log_level: str = Field(default="INFO")

    @field_validator("trading212_api_key", "trading212_api_secret", mode="before")
    @classmethod
    def _strip_secret(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("stream_mode", mode="before")
    @classmethod
    def _lower_mode(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("proxy_preset", mode="before")
    @classmethod
    def _known_preset(cls, value: object) -> str:
        preset = str(value).strip().lower() if value is not None else ""
        if preset not in PROXY_HEADERS:
            logger.warning("Unknown PROXY_PRESET %r; falling back to %r", value, DEFAULT_PROXY_PRESET)
            return DEFAULT_PROXY_PRESET
        return preset

    @property
    def refresh_interval(self) -> float:
        return self.refresh_interval_ms / 1000

    @property
    def min_refresh_interval(self) -> float:
        return self.min_refresh_interval_ms / 1000

    @property
    def instruments_refresh_interval(self) -> float:
        return self.instruments_refresh_interval_ms / 1000


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment, turning validation failures into ConfigError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigError(f"Invalid or missing configuration: {fields}") from e
