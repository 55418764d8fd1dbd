"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./meeting_groups.db"
    CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Join codes
    JOIN_CODE_MAX_ATTEMPTS: int = 5

    # Invitation email
    EMAIL_MODE: str = "console"  # console | brevo
    BREVO_API_KEY: str = ""
    FROM_EMAIL: str = "noreply@example.com"
    FROM_NAME: str = "Meeting Manager"
    APP_URL: str = "http://localhost:5173"

    # Change feed
    CHANGE_QUEUE_SIZE: int = 64

    class Config:
        env_file = ".env"


settings = Settings()
