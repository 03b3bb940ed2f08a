"""
Family Scheduler — Centralized configuration.

Loads all settings from .env and validates required keys.
The entry point calls `load_settings()` once and passes the values it needs
into stores, adapters and the reminder engine.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Shared secret for the external scheduler trigger
    CRON_SECRET: str

    # SQLite
    DATABASE_PATH: str = "data/family_scheduler.db"

    # Deep links in notifications
    APP_URL: str = "http://localhost:3000"

    # Telegram (chat capture + chat reminders; disabled when empty)
    TELEGRAM_BOT_TOKEN: str = ""

    # Email via Resend
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Family Scheduler <onboarding@resend.dev>"

    # Web Push (VAPID)
    VAPID_PRIVATE_KEY: str = ""
    VAPID_SUBJECT: str = "mailto:family-scheduler@example.com"

    # Reminder engine
    REMINDER_WINDOW_DAYS: int = 30
    MORNING_OF_HOUR: int = 7

    # Parser input cap (characters)
    MAX_MESSAGE_LENGTH: int = 4096

    # Trigger server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @field_validator(
        "REMINDER_WINDOW_DAYS", "MORNING_OF_HOUR", "MAX_MESSAGE_LENGTH", "PORT",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("MORNING_OF_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("MORNING_OF_HOUR must be between 0 and 23")
        return v


def load_settings(env_path: Path | None = None) -> Settings:
    """Load settings from environment, validating required keys."""
    load_dotenv(env_path or _ENV_PATH)

    cron_secret = os.getenv("CRON_SECRET", "")
    if not cron_secret or cron_secret.startswith("your-"):
        print("ERROR: CRON_SECRET is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        CRON_SECRET=cron_secret,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/family_scheduler.db"),
        APP_URL=os.getenv("APP_URL", "http://localhost:3000"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        RESEND_API_KEY=os.getenv("RESEND_API_KEY", ""),
        EMAIL_FROM=os.getenv("EMAIL_FROM", "Family Scheduler <onboarding@resend.dev>"),
        VAPID_PRIVATE_KEY=os.getenv("VAPID_PRIVATE_KEY", ""),
        VAPID_SUBJECT=os.getenv("VAPID_SUBJECT", "mailto:family-scheduler@example.com"),
        REMINDER_WINDOW_DAYS=os.getenv("REMINDER_WINDOW_DAYS", "30"),
        MORNING_OF_HOUR=os.getenv("MORNING_OF_HOUR", "7"),
        MAX_MESSAGE_LENGTH=os.getenv("MAX_MESSAGE_LENGTH", "4096"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=os.getenv("PORT", "8000"),
    )
