# backend/tutoring/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_BACKEND_ROOT = Path(__file__).resolve().parents[2]

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = _BACKEND_ROOT / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment name"
    )
    database_url: str = Field(
        default=f"sqlite:///{_BACKEND_ROOT / 'tutoring.db'}",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements to the log")
    log_level: str = Field(default="INFO", description="Root log level for commands")

    # Reservation rules
    lesson_duration_minutes: int = Field(
        default=60, ge=1, description="Length of a single lesson in minutes"
    )
    cancellation_window_hours: int = Field(
        default=24, ge=0, description="Minimum hours before a lesson that it may still be cancelled"
    )
    near_term_response_hours: int = Field(
        default=12,
        ge=1,
        description="Hours a teacher has to respond to a request for today or tomorrow",
    )
    default_response_hours: int = Field(
        default=24, ge=1, description="Hours a teacher has to respond to any later request"
    )
    reservation_create_max_retries: int = Field(
        default=3, ge=1, description="Attempts for reservation creation on deadlock"
    )

    # Conflict scans
    conflict_check_default_days: int = Field(
        default=30, ge=1, description="Default look-ahead window for schedule conflict scans"
    )
    conflict_check_max_days: int = Field(
        default=365, ge=1, description="Longest range accepted by a schedule conflict scan"
    )

    # Listing
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {value}")
        return normalized


settings = Settings()
