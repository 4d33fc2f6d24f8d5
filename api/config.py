"""
Configuration management for the wind server API.
Loads environment variables and provides typed configuration.
"""
from typing import List
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ========================================================================
    # Server Configuration
    # ========================================================================
    host: str = "0.0.0.0"
    port: int = 7000

    # ========================================================================
    # CORS Configuration
    # ========================================================================
    # Comma-separated allowed origins; empty means no cross-origin access
    whitelist: str = ""

    @property
    def whitelist_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.whitelist.split(",") if origin.strip()]

    # ========================================================================
    # Application Configuration
    # ========================================================================
    environment: str = "development"
    log_level: str = "info"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    # ========================================================================
    # Storage & Retention
    # ========================================================================
    data_dir: str = "."
    retention_max_age_days: float = 14.0

    # ========================================================================
    # Harvesting
    # ========================================================================
    poll_enabled: bool = True
    poll_interval_seconds: float = 900.0
    harvest_horizon_days: float = 30.0
    serving_horizon_days: float = 30.0

    nomads_url: str = "https://nomads.ncep.noaa.gov/cgi-bin/filter_gfs_1p00.pl"
    fetch_timeout_seconds: float = 60.0
    fetch_max_attempts: int = 2

    grib2json_path: str = "converter/bin/grib2json"
    convert_timeout_seconds: float = 300.0

    # ========================================================================
    # HTTP caching
    # ========================================================================
    latest_max_age_seconds: int = 300
    nearest_max_age_seconds: int = 86400

    # ========================================================================
    # Pydantic Settings Configuration
    # ========================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


# Convenience exports
settings = get_settings()

if settings.retention_max_age_days <= 0:
    raise ValueError("RETENTION_MAX_AGE_DAYS must be positive")

if settings.is_production and "localhost" in settings.whitelist.lower():
    raise ValueError("WHITELIST must not include localhost in production!")
