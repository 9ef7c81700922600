"""
Configuration management for the PMS calendar recurrence engine.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

import logging
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pms_calendar.models.recurrence import CUSTOM_RECURRENCE_LABEL


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Recurrence expansion
    recurrence_max_occurrences: int = Field(
        default=1000,
        ge=1,
        description="Upper bound on occurrences generated by a single expansion call"
    )
    recurrence_custom_label: str = Field(
        default=CUSTOM_RECURRENCE_LABEL,
        min_length=1,
        description="Text returned when a stored rule cannot be described"
    )

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

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from pms_calendar.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.recurrence_max_occurrences)
    """
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Attach a console handler to the root logger at the configured level.

    Intended for scripts and host applications; library modules only
    create module loggers and never configure handlers themselves.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
