"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True

    # Application
    APP_NAME: str = "Quiz Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_PER_HOUR: int = 1000

    # Quiz Settings
    QUIZ_CACHE_TTL: int = 3600  # 1 hour
    SESSION_TICK_SECONDS: float = 1.0
    COMPLETED_SESSION_RETENTION_SECONDS: int = 900  # 15 minutes
    ABANDONED_SESSION_SECONDS: int = 86400  # untimed sessions left in progress, 24 hours
    DEFAULT_PASSING_SCORE: int = 70
    DEFAULT_MAX_ATTEMPTS: int = 1

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
