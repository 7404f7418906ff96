"""
Eve Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from eve/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram (channel adapter only)
    TELEGRAM_BOT_TOKEN: str = ""

    # LLM: provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # Audio: OpenAI Whisper + TTS
    OPENAI_API_KEY: str = ""

    # SQLite
    DATABASE_PATH: str = "data/eve.db"

    # Security: empty list lets everyone in
    ALLOWED_USER_IDS: list[int] = []

    # Prompt personalization
    TIMEZONE: str = "UTC"
    DEFAULT_TRADE: str = "Other"
    CONTEXT_LIMIT: int = 20
    HISTORY_LIMIT: int = 50

    # Outbound email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = ""

    # Xero accounting sync (optional)
    XERO_CLIENT_ID: str = ""
    XERO_CLIENT_SECRET: str = ""
    XERO_REFRESH_TOKEN: str = ""
    XERO_TENANT_ID: str = ""

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("CONTEXT_LIMIT", "HISTORY_LIMIT", mode="before")
    @classmethod
    def parse_limit(cls, v: str | int) -> int:
        return max(1, int(v))

    @property
    def xero_enabled(self) -> bool:
        return bool(
            self.XERO_CLIENT_ID
            and self.XERO_CLIENT_SECRET
            and self.XERO_REFRESH_TOKEN
            and self.XERO_TENANT_ID
        )


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/eve.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        DEFAULT_TRADE=os.getenv("DEFAULT_TRADE", "Other"),
        CONTEXT_LIMIT=os.getenv("CONTEXT_LIMIT", "20"),
        HISTORY_LIMIT=os.getenv("HISTORY_LIMIT", "50"),
        RESEND_API_KEY=os.getenv("RESEND_API_KEY", ""),
        EMAIL_FROM=os.getenv("EMAIL_FROM", ""),
        XERO_CLIENT_ID=os.getenv("XERO_CLIENT_ID", ""),
        XERO_CLIENT_SECRET=os.getenv("XERO_CLIENT_SECRET", ""),
        XERO_REFRESH_TOKEN=os.getenv("XERO_REFRESH_TOKEN", ""),
        XERO_TENANT_ID=os.getenv("XERO_TENANT_ID", ""),
    )


# Singleton, imported by all other modules as:
#   from eve.config import settings
settings = _load_settings()
