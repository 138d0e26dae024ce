"""
Client configuration for the RestroPOS order and billing core.

Every value can be overridden through the environment (``RESTROPOS_*``)
or a local ``.env`` file.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# SockJS servers expose a raw websocket under ``<endpoint>/websocket``
WEBSOCKET_ENDPOINT = "/ws/websocket"


class Settings(BaseSettings):
    """Client settings with environment variable support."""

    # Remote order-service
    api_url: str = "http://localhost:8080/api"
    ws_url: Optional[str] = None
    http_timeout_seconds: float = 30.0
    ws_connect_timeout_seconds: float = 10.0

    # Polling backstops (seconds)
    dashboard_poll_seconds: int = 30
    customer_poll_seconds: int = 5
    table_poll_seconds: int = 30

    # GST
    seller_state_code: str = "29"
    default_gst_rate_percent: Decimal = Decimal("5")

    # Persisted session state; None keeps the session in memory
    session_storage_path: Optional[str] = None

    # Environment Settings
    environment: str = "development"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RESTROPOS_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("seller_state_code")
    @classmethod
    def validate_state_code(cls, v: str) -> str:
        """GST state codes are two digits (e.g. 29 for Karnataka)."""
        v = v.strip()
        if len(v) != 2 or not v.isdigit():
            raise ValueError("seller_state_code must be a two digit GST state code")
        return v

    @field_validator(
        "dashboard_poll_seconds", "customer_poll_seconds", "table_poll_seconds"
    )
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("poll intervals must be positive")
        return v

    @property
    def websocket_url(self) -> str:
        """Websocket endpoint derived from the API base URL."""
        if self.ws_url:
            return self.ws_url

        base = self.api_url
        if base.endswith("/api"):
            base = base[: -len("/api")]
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}{WEBSOCKET_ENDPOINT}"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
