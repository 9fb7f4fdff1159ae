"""
Click Merchant Configuration Module

Loads environment variables for the merchant callback service.
"""
from pydantic import SecretStr
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Security Notes:
    - The Click secret key only ever reaches the signature service
    - Secrets are SecretStr so they never show up in reprs or logs
    - Telegram notifications are disabled unless both BOT_TOKEN and CHAT_ID are set
    """

    # Click merchant credentials
    secret_key: SecretStr = SecretStr("click_secret_key_demo_only_change_me")

    # Database
    database_url: str = "sqlite+aiosqlite:///./click_merchant.db"

    # Telegram notifications
    bot_token: Optional[SecretStr] = None
    chat_id: Optional[str] = None
    telegram_api_url: str = "https://api.telegram.org"
    notification_timeout_seconds: float = 10.0

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 7812

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
