"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ultravox (voice provider)
    ultravox_api_key: Optional[str] = None
    ultravox_api_url: str = "https://api.ultravox.ai/api/calls"

    # Where the call manager asks for a join URL (this service by default)
    create_call_url: str = "http://localhost:8000/api/calls"

    # Database
    database_url: str = "sqlite+aiosqlite:///./voicecall.db"

    # Calls
    default_wallet_seconds: int = 420  # 7 minutes
    http_max_attempts: int = 3
    default_time_exceeded_message: str = "Maximum call duration reached."
    wallet_time_exceeded_message: str = (
        "Your minutes have been used up. Thank you for talking with Alex!"
    )

    # Logging
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
