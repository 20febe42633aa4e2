"""
Telelink configuration. All environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Telegram Bot API
    TELEGRAM_BOT_TOKEN: str = os.environ.get("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_API_URL: str = os.environ.get("TELEGRAM_API_URL", "https://api.telegram.org")
    TELEGRAM_WEBHOOK_SECRET: str = os.environ.get("TELEGRAM_WEBHOOK_SECRET", "")
    TELEGRAM_WEBHOOK_PATH: str = os.environ.get("TELEGRAM_WEBHOOK_PATH", "/api/telegram/webhook")
    TELEGRAM_SEND_TIMEOUT_SECONDS: float = float(os.environ.get("TELEGRAM_SEND_TIMEOUT_SECONDS", "10"))

    # Linking codes
    LINK_CODE_EXPIRY_MINUTES: int = 15
    DEMO_CODE_EXPIRY_DAYS: int = 365
    DEMO_LINK_CODES: bool = os.environ.get("DEMO_LINK_CODES", "true").lower() == "true"
    CLEANUP_INTERVAL_SECONDS: int = 60

    # Notification fan-out
    NOTIFY_MAX_CONCURRENCY: int = int(os.environ.get("NOTIFY_MAX_CONCURRENCY", "25"))
    NOTIFY_SEND_TIMEOUT_SECONDS: float = float(os.environ.get("NOTIFY_SEND_TIMEOUT_SECONDS", "10"))

    # AI responder
    ANTHROPIC_API_KEY: str = os.environ.get("ANTHROPIC_API_KEY", "")
    RESPONDER_MODEL: str = os.environ.get("RESPONDER_MODEL", "claude-3-5-haiku-20241022")
    RESPONDER_MAX_TOKENS: int = 1024
    RESPONDER_TIMEOUT_SECONDS: float = float(os.environ.get("RESPONDER_TIMEOUT_SECONDS", "15"))

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    BOT_NAME: str = os.environ.get("BOT_NAME", "FlexMove")

    @property
    def PUBLIC_APP_URL(self) -> str:
        """Base URL of the web platform, used for deep links in bot messages."""
        url = os.environ.get("PUBLIC_APP_URL")
        if url:
            return url.rstrip("/")
        return "http://localhost:3000" if self.ENVIRONMENT == "development" else "https://flexmove.vercel.app"


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
_testing = os.environ.get("TESTING", "").lower() == "true"

if not _testing:
    if not settings.TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN environment variable is required")
