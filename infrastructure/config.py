"""Application settings, read from environment variables and .env"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    APP_NAME: str = "Room Reservation & Stay Lifecycle API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # JWT
    SECRET_KEY: str = "your-secret-key-keep-it-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Booking rules
    ADVANCE_BOOKING_DAYS: int = 120
    MAX_COMMIT_ATTEMPTS: int = 5

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
