"""
Pledge — Centralized configuration.

Loads settings from the environment (and a project-root .env, if present).
Nothing is required: without LLM_API_KEY the language-model deadline stage is
disabled, and without DATABASE_PATH commitments live in memory.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from pledge/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Language-model deadline fallback (OpenAI chat completions)
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = 5.0
    LLM_MAX_OUTPUT_TOKENS: int = 150

    # Local zone used to compute "now" for deadline phrases
    TIMEZONE: str = "UTC"

    # SQLite file; empty keeps everything in memory
    DATABASE_PATH: str = ""

    LOG_LEVEL: str = "INFO"

    @field_validator("LLM_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_timeout(cls, v: str | float) -> float:
        return float(v)

    @field_validator("LLM_MAX_OUTPUT_TOKENS", mode="before")
    @classmethod
    def parse_tokens(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return str(v).upper()

    @property
    def llm_enabled(self) -> bool:
        return bool(self.LLM_API_KEY) and not self.LLM_API_KEY.startswith("your-")


def _load_settings() -> Settings:
    return Settings(
        LLM_API_KEY=os.getenv("LLM_API_KEY", ""),
        LLM_MODEL=os.getenv("LLM_MODEL", "gpt-4o-mini"),
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "5.0"),
        LLM_MAX_OUTPUT_TOKENS=os.getenv("LLM_MAX_OUTPUT_TOKENS", "150"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton — imported as:
#   from pledge.config import settings
settings = _load_settings()
