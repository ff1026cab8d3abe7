"""
Shared configuration management for the storefront services.

Every field can be overridden through a ``STOREFRONT_``-prefixed environment
variable or a local ``.env`` file, e.g. ``STOREFRONT_REDIS_URL``.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/cozyberries")
    redis_socket_timeout: float = Field(default=2.0)

    # Cache behaviour
    cache_enabled: bool = Field(default=True)
    background_drain_timeout: float = Field(default=5.0)
    size_options_memory_ttl: float = Field(default=120.0)

    # Security
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: Optional[str] = Field(default="cozyberries")
    jwt_audience: Optional[str] = Field(default="cozyberries-users")

    # Client-side collection sync
    storefront_api_url: str = Field(default="http://localhost:8000")
    sync_debounce_seconds: float = Field(default=1.0)
    sync_state_dir: str = Field(default=".cozyberries")

    # HTTP
    cors_origins: str = Field(default="*")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
