"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .services.notification_service import LoggingNotifier, Notifier, TelegramNotifier


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    DATABASE_URL: Optional[str] = None
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Telegram notifications (disabled when no bot token is set)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_notifier() -> Notifier:
    """Resolve the tenant notifier.

    Falls back to a log-only notifier when TELEGRAM_BOT_TOKEN is not set so
    webhook handlers never have to branch on configuration.
    """
    settings = get_settings()
    if not settings.TELEGRAM_BOT_TOKEN:
        return LoggingNotifier()
    return TelegramNotifier(
        bot_token=settings.TELEGRAM_BOT_TOKEN,
        api_base=settings.TELEGRAM_API_BASE,
        timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    )
