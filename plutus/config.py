"""
Plutus Configuration

Application settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PLUTUS_",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Plutus"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Persistence
    persistence_backend: Literal["memory", "sql"] = "memory"
    database_url: str = Field(
        default="sqlite+aiosqlite:///./plutus.db",
        description="SQLAlchemy async connection URL",
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    persistence_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Upper bound for a single persistence call",
    )

    # Pricing
    recalculation_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Period of the background price recalculation loop",
    )
    price_change_epsilon: float = 0.01
    seasonal_lookahead_minutes: int = 60  # materialize campaigns this early

    # Admin
    admin_api_key: str = Field(default="", description="Required X-Admin-Key when set")

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
