"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./data/alerting.db"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "data/logs"
    LOG_TO_FILE: bool = True

    # API
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Reminder scheduler
    REMINDER_SCHEDULER_ENABLED: bool = True
    REMINDER_INTERVAL_MINUTES: int = 120  # 2 hours
    DEFAULT_SNOOZE_HOURS: int = 24

    # Bulk dispatch throttling
    NOTIFICATION_BATCH_SIZE: int = 10
    NOTIFICATION_BATCH_DELAY_SECONDS: float = 0.1

    # Email channel
    NOTIFICATION_FROM_EMAIL: str = "alerts@localhost"

    @field_validator('LOG_LEVEL', mode='after')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator('REMINDER_INTERVAL_MINUTES', 'DEFAULT_SNOOZE_HOURS', 'NOTIFICATION_BATCH_SIZE', mode='after')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Intervals, snooze windows and batch sizes must be at least 1."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator('NOTIFICATION_BATCH_DELAY_SECONDS', mode='after')
    @classmethod
    def validate_batch_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("NOTIFICATION_BATCH_DELAY_SECONDS cannot be negative")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


# Global settings instance
settings = Settings()
