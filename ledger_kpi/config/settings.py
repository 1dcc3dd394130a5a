"""
Sales Ledger KPI Pipeline
Centralized Configuration Management

Configuration is read from environment variables (and an optional .env file)
through Pydantic settings, with validation and type safety.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KPISettings(BaseSettings):
    """KPI computation configuration"""

    model_config = SettingsConfigDict(env_prefix="KPI_")

    decimal_places: int = Field(default=2, ge=0, description="Rounding for money and ratio metrics")
    top_n: int = Field(default=10, ge=1, description="Default cut-off for ranked tables")
    expected_period_days: int = Field(
        default=28,
        ge=1,
        description="Distinct days a period normally spans; fewer marks it partial",
    )
    max_workers: int = Field(default=1, ge=1, description="Worker threads for grouping")
    exclude_partial_periods: bool = Field(
        default=False,
        description="Drop partial periods from trend comparisons instead of flagging them",
    )


class LedgerSourceSettings(BaseSettings):
    """Ledger file source and export locations"""

    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    date_format: str = Field(default="%m-%d-%y", description="Date format of the raw ledger")
    null_values: List[str] = Field(
        default=["", "NULL", "null", "None", "NA", "N/A", "nan"],
        description="Tokens read as null",
    )
    raw_path: str = Field(default="./data/raw", description="Raw ledger location")
    curated_path: str = Field(default="./data/curated", description="Export location")
    export_format: str = Field(default="parquet", description="Export file format")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, description="Log file path")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="ledger-kpi", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    kpi: KPISettings = Field(default_factory=KPISettings)
    source: LedgerSourceSettings = Field(default_factory=LedgerSourceSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
