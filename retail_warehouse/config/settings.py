"""
Retail Warehouse
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety for the cleansing and dimensional build stages.
"""

from datetime import date
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConformanceSettings(BaseSettings):
    """Source-system conventions used by the cleansing rules"""

    model_config = SettingsConfigDict(env_prefix="CONFORMANCE_")

    category_prefix_width: int = Field(default=5, description="Width of the category prefix in product keys")
    product_key_separator: str = Field(default="-", description="Separator inside product keys")
    category_id_separator: str = Field(default="_", description="Separator used in derived category ids")
    location_id_separator: str = Field(default="-", description="Separator stripped from location customer ids")
    demographic_id_prefix: str = Field(default="NAS", description="Prefix token stripped from demographic customer ids")
    not_available: str = Field(default="n/a", description="Label for unknown or unmapped values")

    @field_validator("category_prefix_width")
    @classmethod
    def validate_prefix_width(cls, v: int) -> int:
        """Prefix width must be positive"""
        if v <= 0:
            raise ValueError("category_prefix_width must be positive")
        return v


class PipelineSettings(BaseSettings):
    """Pipeline execution configuration"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    parallel_cleansing: bool = Field(default=False, description="Run the six cleansing transforms in a thread pool")
    max_workers: int = Field(default=6, description="Thread pool size for parallel cleansing")
    reference_date: Optional[date] = Field(
        default=None,
        description="Date used to reject future birthdates (defaults to today)",
    )


class DataLakeSettings(BaseSettings):
    """Data Lake Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    cleansed_path: str = Field(default="./data/cleansed", description="Cleansed zone path")
    curated_path: str = Field(default="./data/curated", description="Curated (star schema) zone path")
    persist_outputs: bool = Field(default=False, description="Write stage outputs to the data lake")
    compression: str = Field(default="snappy", description="Parquet compression codec")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or console")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and console renderers exist"""
        if v.lower() not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v.lower()


class DataQualitySettings(BaseSettings):
    """Data Quality Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    enable_data_quality_checks: bool = Field(
        default=True,
        alias="ENABLE_DATA_QUALITY_CHECKS",
        description="Run validation suites after each stage",
    )
    strict_mode: bool = Field(
        default=False,
        alias="DATA_QUALITY_STRICT",
        description="Treat warnings as failures",
    )


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
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="retail-warehouse", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    conformance: ConformanceSettings = Field(default_factory=ConformanceSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    data_quality: DataQualitySettings = Field(default_factory=DataQualitySettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
