"""Centralized configuration loading from environment variables and .env files."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream weather provider
    OPENWEATHER_API_KEY: str = ""
    OPENWEATHER_BASE_URL: str = "https://api.openweathermap.org/data/2.5"
    OPENWEATHER_UNITS: str = "metric"
    FETCH_TIMEOUT_SECONDS: float = 5.0

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 10000
    ALLOWED_ORIGINS: list[str] = ["*"]
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # WebSocket streaming
    WS_PATH: str = "/weather"
    BROADCAST_INTERVAL_SECONDS: float = 120.0

    # Logging
    LOG_LEVEL: str = "INFO"

    # Client
    CLIENT_WS_URL: str = "ws://localhost:10000/weather"
    CLIENT_CONNECT_TIMEOUT_SECONDS: float = 5.0
    CLIENT_HEARTBEAT_SECONDS: float = 30.0
    CLIENT_MAX_RECONNECT_ATTEMPTS: int = 3
    CLIENT_RECONNECT_BACKOFF_SECONDS: float = 3.0

    @field_validator("WS_PATH")
    @classmethod
    def _normalise_ws_path(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("/"):
            value = "/" + value
        return value.rstrip("/") or ""

    def require_api_key(self) -> str:
        """Return the upstream API key, raising if it is not configured."""
        if not self.OPENWEATHER_API_KEY.strip():
            raise RuntimeError("OPENWEATHER_API_KEY not set")
        return self.OPENWEATHER_API_KEY


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance (singleton)."""
    return Settings()
