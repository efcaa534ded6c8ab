"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Cache settings
    cache_enabled: bool = True
    register_default_namespaces: bool = True
    revalidation_workers: int = 4
    coalesce_timeout_seconds: float = 30.0
    # Share of a full namespace evicted at once
    eviction_fraction: float = 0.1

    # Maintenance
    maintenance_enabled: bool = True
    sweep_interval_seconds: int = 300    # 5 minutes
    warm_interval_seconds: int = 1800    # 30 minutes

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "READTHROUGH_"


settings = Settings()
