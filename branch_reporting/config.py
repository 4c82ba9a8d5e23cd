"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    cors_origins: List[str] = Field(default=["*"])

    # Database
    database_url: str = Field(
        default="sqlite:///./data/branch_reporting.db"
    )

    # Job store
    job_ttl_seconds: int = Field(default=3600)
    janitor_interval_seconds: float = Field(default=60.0)

    # Commit
    commit_retry_attempts: int = Field(default=3)

    # Report layout
    display_divisor: Decimal = Field(default=Decimal("1000000"))
    report_title: str = Field(default="Daily Managed Balance Report - Universal Banker")
    default_role: str = Field(default="Universal Banker")
    default_org_unit: str = Field(default="-")

    # Storage
    upload_dir: Path = Field(default=Path("./data/uploads"))
    reports_dir: Path = Field(default=Path("./data/reports"))
    evict_on_download: bool = Field(default=True)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
