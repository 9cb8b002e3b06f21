"""
ShuffleBot — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

BOT_NAME = "ShuffleBot"
BOT_VERSION = "1.4.0"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/shufflebot.db"

    # Event processing
    WORKERS: int = 4
    TIMEOUT: float = 10.0          # seconds per handled event
    TIMEZONE: str = "UTC"          # daily skip reset happens at local midnight
    SECURE_RANDOM: bool = False

    # Shown by /version
    PROJECT_URL: str = ""

    # ChatGPT-compatible API (empty key → /gpt is "not configured")
    GPT_API_KEY: str = ""
    GPT_ORGANIZATION: str = ""
    GPT_URL: str = ""              # empty → OpenAI default endpoint
    GPT_MODEL: str = "gpt-4o"
    GPT_MAX_TOKENS: int = 1024
    GPT_TEMPERATURE: float = 0.7

    # Yandex GPT (empty key or folder → /ygpt is "not configured")
    YANDEX_GPT_API_KEY: str = ""
    YANDEX_GPT_URL: str = "https://llm.api.cloud.yandex.net/foundationModels/v1/completion"
    YANDEX_GPT_FOLDER: str = ""

    LOG_LEVEL: str = "INFO"

    @field_validator("WORKERS", mode="before")
    @classmethod
    def parse_workers(cls, v: str | int) -> int:
        workers = int(v)
        if workers < 1:
            raise ValueError("number of workers must be greater than 0")
        return workers

    @field_validator("SECURE_RANDOM", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"unknown timezone {v!r}") from exc
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/shufflebot.db"),
        WORKERS=os.getenv("WORKERS", "4"),
        TIMEOUT=os.getenv("TIMEOUT", "10"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        SECURE_RANDOM=os.getenv("SECURE_RANDOM", "false"),
        PROJECT_URL=os.getenv("PROJECT_URL", ""),
        GPT_API_KEY=os.getenv("GPT_API_KEY", ""),
        GPT_ORGANIZATION=os.getenv("GPT_ORGANIZATION", ""),
        GPT_URL=os.getenv("GPT_URL", ""),
        GPT_MODEL=os.getenv("GPT_MODEL", "gpt-4o"),
        GPT_MAX_TOKENS=os.getenv("GPT_MAX_TOKENS", "1024"),
        GPT_TEMPERATURE=os.getenv("GPT_TEMPERATURE", "0.7"),
        YANDEX_GPT_API_KEY=os.getenv("YANDEX_GPT_API_KEY", ""),
        YANDEX_GPT_URL=os.getenv(
            "YANDEX_GPT_URL",
            "https://llm.api.cloud.yandex.net/foundationModels/v1/completion",
        ),
        YANDEX_GPT_FOLDER=os.getenv("YANDEX_GPT_FOLDER", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
