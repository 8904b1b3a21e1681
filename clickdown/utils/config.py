"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

The settings object is never stored at module level: entry points call
get_settings() once and pass the instance down to the engine and scheduler.

Usage:
    from clickdown.utils.config import get_settings

    settings = get_settings()
    engine = ExtractionEngine(settings, client, sink, store)
"""

import math
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

RUN_MODES = ("list", "workspace")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ClickUp API Configuration
    CLICKUP_API_BASE: str = Field(default="https://api.clickup.com/api/v2")
    CLICKUP_API_KEY: str = Field(default="")
    CLICKUP_TEAM_ID: str = Field(default="")
    CLICKUP_LIST_ID: str = Field(default="")
    API_TIMEOUT: int = Field(default=30)

    # Extraction Configuration
    EXTRACT_MODE: str = Field(default="workspace")
    EXTRACT_PAGE_SIZE: int = Field(default=100, gt=0)
    EXTRACT_MAX_PAGES: int = Field(default=50, gt=0)
    EXTRACT_MAX_RETRIES: int = Field(default=3, gt=0)
    EXTRACT_RETRY_BASE_DELAY: float = Field(default=2.0, ge=0)
    EXTRACT_RATE_LIMIT_COOLDOWN: float = Field(default=5.0, ge=0)
    EXTRACT_RATE_LIMIT_MAX_WAITS: int = Field(default=12, ge=0)
    EXTRACT_INCLUDE_CLOSED: bool = Field(default=True)
    EXTRACT_INCLUDE_SUBTASKS: bool = Field(default=True)

    # Time-sliced execution (budget <= 0 disables suspension)
    EXTRACT_TIME_BUDGET: float = Field(default=280.0)
    EXTRACT_RESUME_DELAY: float = Field(default=45.0, ge=0)

    # Scheduler Configuration
    EXTRACT_SCHEDULE_CRON: str = Field(default="0 3 * * *")

    # Row Rendering
    DESCRIPTION_MAX_CHARS: int = Field(default=5000, gt=0)
    FIELD_YES_LABEL: str = Field(default="Yes")
    FIELD_NO_LABEL: str = Field(default="No")
    FIELD_DATE_FORMAT: str = Field(default="%d/%m/%Y")
    FOLDERLESS_LABEL: str = Field(default="(No Folder)")

    # File System Paths
    STATE_DIR: str = Field(default="/app/data/state")
    CHECKPOINT_FILE: str = Field(default="checkpoint.json")
    OUTPUT_DB_PATH: str = Field(default="/app/data/db/tasks.db")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")
    LOG_BUFFER_SIZE: int = Field(default=2000, gt=0)

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="clickdown-extractor")
    APP_VERSION: str = Field(default="0.1.0")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("EXTRACT_MODE")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in RUN_MODES:
            raise ValueError(f"EXTRACT_MODE must be one of {RUN_MODES}, got {v!r}")
        return mode

    @property
    def time_budget(self) -> float:
        """Per-invocation budget in seconds; infinite in continuous mode."""
        if self.EXTRACT_TIME_BUDGET <= 0:
            return math.inf
        return self.EXTRACT_TIME_BUDGET

    @property
    def checkpoint_path(self) -> Path:
        return Path(self.STATE_DIR) / self.CHECKPOINT_FILE

    @property
    def root_id(self) -> str:
        """Root of the traversal for the configured mode."""
        return self.CLICKUP_LIST_ID if self.EXTRACT_MODE == "list" else self.CLICKUP_TEAM_ID


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()
