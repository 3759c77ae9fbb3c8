"""
Engine configuration settings
"""
import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with environment variable support"""

    # App
    APP_NAME: str = "FSRS Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")  # development, staging, production

    # Monitoring
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")

    # Optimizer input limits
    OPTIMIZER_MAX_EVENTS: int = int(os.getenv("OPTIMIZER_MAX_EVENTS", "50000"))
    OPTIMIZER_LOOKBACK_DAYS: int = int(os.getenv("OPTIMIZER_LOOKBACK_DAYS", "730"))

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


settings = Settings()
