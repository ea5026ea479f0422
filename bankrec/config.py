"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Persistent base folder for the database, logs and exported reports
APP_BASE_PATH = Path(os.environ.get(
    "BANKREC_BASE_PATH",
    Path.home() / "Documents" / "bankrec",
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BANKREC_",
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(default="sqlite:///./data/bankrec.db")
    database_echo: bool = Field(default=False)

    # Matching tolerances
    amount_tolerance_ratio: float = Field(default=0.01)
    min_absolute_tolerance: float = Field(default=0.0)
    date_window_days: int = Field(default=7)

    # Scoring
    amount_weight: float = Field(default=0.6)
    date_weight: float = Field(default=0.4)
    acceptance_floor: float = Field(default=0.5)

    # Party suggestion
    party_fragment_length: int = Field(default=10)
    party_similarity_threshold: float = Field(default=80.0)

    # Import
    header_scan_lines: int = Field(default=5)
    import_chunk_size: int = Field(default=500)
    unmatched_preview_limit: int = Field(default=20)

    # Storage
    reports_dir: Path = Field(default=Path("./data/reports"))

    def ratio_tolerance_cents(self, amount_cents: int) -> Decimal:
        """
        Default amount tolerance for a bank line.
        Returns: max(amount * ratio, min_absolute_tolerance), in cents.
        """
        relative = Decimal(amount_cents) * Decimal(str(self.amount_tolerance_ratio))
        floor = Decimal(str(self.min_absolute_tolerance)) * 100
        return max(relative, floor)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
