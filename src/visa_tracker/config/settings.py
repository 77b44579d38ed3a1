"""Configuration settings for the visa tracker."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_TABLES = ["Dashboard", "Users", "Sheet1", "Copy of ICDC", "Daily Report"]


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Spreadsheet store
    sheets_api_url: str = Field(
        default="https://sheets.googleapis.com", validation_alias="SHEETS_API_URL"
    )
    spreadsheet_id: str = Field(..., validation_alias="SPREADSHEET_ID")
    sheets_access_token: SecretStr = Field(..., validation_alias="SHEETS_ACCESS_TOKEN")
    sheets_timeout: float = Field(default=30.0, validation_alias="SHEETS_TIMEOUT")
    sheets_max_retries: int = Field(default=3, validation_alias="SHEETS_MAX_RETRIES")

    # Table layout
    system_tables: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SYSTEM_TABLES),
        validation_alias="SYSTEM_TABLES",
        description="Tables that are never treated as companies",
    )
    task_table: str = Field(default="Daily Report", validation_alias="TASK_TABLE")
    read_row_limit: int = Field(
        default=1000,
        validation_alias="READ_ROW_LIMIT",
        description="Last physical row requested when reading a table",
    )

    # Local snapshot cache
    cache_path: Path = Field(
        default=Path(".visa_tracker/snapshot.json"), validation_alias="CACHE_PATH"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
