"""
Shared configuration management for the resource layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RESOURCE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class ResourceSettings(BaseConfig):
    """Settings consumed by registries and the default HTTP transport."""

    # Backend
    base_url: str = Field(default="http://localhost:8000")
    request_timeout: float = Field(default=10.0)

    # Build metadata appended to reads when a registry opts in
    content_cache_key: Optional[str] = Field(default=None)

    # Registry defaults
    default_namespace: str = Field(default="core")
    default_id_key: str = Field(default="id")


def get_config(**overrides) -> ResourceSettings:
    """Get resource layer settings from the environment."""
    return ResourceSettings(**overrides)
