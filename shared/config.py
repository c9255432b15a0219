"""
Shared configuration management for the StatEnv gateway.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STATENV_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # App registry (JSON file); falls back to .statenvrc lookup in the CWD
    apps_file: Optional[str] = Field(default=None)

    # Rate limiting
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_window_ms: int = Field(default=60000, ge=1)
    rate_limit_per_app: bool = Field(default=False)
    rate_limit_sweep_probability: float = Field(default=0.01, ge=0.0, le=1.0)

    # Upstream forwarding
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)
    client_ip_header: str = Field(default="CF-Connecting-IP")

    # Response cache
    cache_backend: str = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_max_entries: int = Field(default=1000, ge=1)

    # CORS
    strict_origin_matching: bool = Field(default=False)
    cors_max_age: int = Field(default=86400, ge=0)

    # Secrets
    secrets_file: Optional[str] = Field(default=None)
    master_key: Optional[str] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
