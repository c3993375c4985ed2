"""
Shared configuration management for the response cache layer.
"""

from typing import Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env(name: str, field_name: str) -> AliasChoices:
    """Accept both the environment variable and the field name."""
    return AliasChoices(name, field_name)


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=_env("CACHE_ENV", "env"))
    log_level: str = Field(default="info", validation_alias=_env("CACHE_LOG_LEVEL", "log_level"))

    # Key-value store
    redis_host: str = Field(default="localhost", validation_alias=_env("REDIS_HOST", "redis_host"))
    redis_port: int = Field(default=6379, validation_alias=_env("REDIS_PORT", "redis_port"))
    redis_password: Optional[str] = Field(default=None, validation_alias=_env("REDIS_PASSWORD", "redis_password"))
    redis_db: int = Field(default=0, validation_alias=_env("REDIS_DB", "redis_db"))
    redis_url: Optional[str] = Field(default=None, validation_alias=_env("REDIS_URL", "redis_url"))
    socket_timeout: float = Field(default=5.0, validation_alias=_env("REDIS_SOCKET_TIMEOUT", "socket_timeout"))
    connect_timeout: float = Field(default=5.0, validation_alias=_env("REDIS_CONNECT_TIMEOUT", "connect_timeout"))
    max_connections: int = Field(default=50, validation_alias=_env("REDIS_MAX_CONNECTIONS", "max_connections"))

    # Reconnect policy
    retry_base_delay: float = Field(default=0.05, validation_alias=_env("REDIS_RETRY_BASE_DELAY", "retry_base_delay"))
    retry_max_delay: float = Field(default=2.0, validation_alias=_env("REDIS_RETRY_MAX_DELAY", "retry_max_delay"))
    retry_max_attempts: int = Field(default=5, validation_alias=_env("REDIS_RETRY_MAX_ATTEMPTS", "retry_max_attempts"))

    # Response cache
    cache_default_ttl: int = Field(default=300, validation_alias=_env("CACHE_DEFAULT_TTL", "cache_default_ttl"))
    cache_key_prefix: str = Field(default="cache:", validation_alias=_env("CACHE_KEY_PREFIX", "cache_key_prefix"))
    cache_normalize_query: bool = Field(
        default=False, validation_alias=_env("CACHE_NORMALIZE_QUERY", "cache_normalize_query")
    )
    # path prefix -> ttl seconds, e.g. CACHE_RULES='{"/api/users": 60}'
    cache_rules: Dict[str, int] = Field(default_factory=dict, validation_alias=_env("CACHE_RULES", "cache_rules"))


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
