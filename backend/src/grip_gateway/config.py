"""
Configuration management for the GRIP stream gateway.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utilities.constants import KEEP_ALIVE_INTERVAL, SUBSCRIBER_QUEUE_SIZE


class Settings(BaseSettings):
    """Gateway settings, read from ``GRIP_GATEWAY_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GRIP_GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    service_name: str = "grip-gateway"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8000

    # Proxy
    # external: a GRIP proxy (e.g. Pushpin) fronts this service and holds connections
    # embedded: this process holds connections itself
    proxy_mode: Literal["external", "embedded"] = "external"
    keep_alive_interval: int = Field(default=KEEP_ALIVE_INTERVAL, gt=0)
    subscriber_queue_size: int = Field(default=SUBSCRIBER_QUEUE_SIZE, gt=0)

    # GRIP control channel of the external proxy, e.g. http://localhost:5561
    grip_control_url: Optional[str] = None
    control_timeout: float = Field(default=5.0, gt=0)


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings()
