"""
Shared configuration management for the listing data layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DATALAYER_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class DataLayerConfig(BaseConfig):
    """Cache and loader configuration."""

    service_name: str = Field(default="dataloader")

    # Cache
    default_ttl_seconds: float = Field(default=300.0, ge=0)
    fresh_data_ttl_seconds: float = Field(default=30.0, ge=0)
    cleanup_interval_seconds: float = Field(default=300.0, gt=0)
    copy_values: bool = Field(default=False)

    # Fetching
    coalesce_fetches: bool = Field(default=False)

    # Metrics
    metrics_port: int = Field(default=9090)
    enable_metrics_server: bool = Field(default=False)


def get_config(**overrides) -> DataLayerConfig:
    """Get data layer configuration, environment first, overrides last."""
    return DataLayerConfig(**overrides)
