"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./quizflow.db"

    # Storage (session handles and auth-redirect snapshots)
    STORAGE_BACKEND: str = "redis"  # redis | memory
    REDIS_URL: str = "redis://redis:6379/0"
    SESSION_HANDLE_TTL: int = 4 * 3600  # 4 hours
    AUTH_REDIRECT_TTL: int = 1800  # 30 minutes

    # Application
    APP_NAME: str = "Quiz Session Platform"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Sign-in provider
    SIGN_IN_URL: str = "/api/auth/signin"

    # Scoring
    SIMILARITY_THRESHOLD: float = 0.6
    HINT_PENALTIES: List[int] = [5, 8, 12, 15, 20]  # percentage points per hint level

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
