"""
Configuration management for CareCompanion
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "CareCompanion"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./care_companion.db"
    DATABASE_ECHO: bool = False

    # Device client
    API_BASE_URL: str = "http://localhost:8000"
    DEVICE_TIMEZONE: str = "UTC"

    # Push transport (webhook receiving delivered reminders)
    PUSH_WEBHOOK_URL: Optional[str] = None
    PUSH_TIMEOUT_SECONDS: float = 10.0

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:8081", "http://localhost:19006"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class SchedulingConfig:
    """Configuration for reminder expansion and materialization"""

    # Recurrence horizons
    DAILY_HORIZON_DAYS: int = 30
    WEEKLY_HORIZON_WEEKS: int = 8

    # Task reminders fire at this wall-clock time unless overridden
    TASK_DEFAULT_HOUR: int = 9
    TASK_DEFAULT_MINUTE: int = 0

    # Notification field limits
    TITLE_MAX_LENGTH: int = 100
    MESSAGE_MAX_LENGTH: int = 500


# Database table names
class TableNames:
    USERS = "users"
    CAREGIVER_LINKS = "caregiver_links"
    MEDICATIONS = "medications"
    MEDICATION_INTAKES = "medication_intakes"
    TASKS = "tasks"
    NOTIFICATIONS = "notifications"


settings = get_settings()
scheduling_config = SchedulingConfig()
