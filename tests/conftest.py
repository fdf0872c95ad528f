"""Shared test fixtures and configuration.

Pins the environment before any pledge imports so the app runs with
in-memory stores, UTC and no language-model provider.
"""

import os

os.environ["LLM_API_KEY"] = ""
os.environ["DATABASE_PATH"] = ""
os.environ["TIMEZONE"] = "UTC"

from datetime import datetime, timezone

import pytest

from pledge.services.llm import ProviderTransientError

# Wednesday 2024-01-10 12:00 UTC
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class StubGenerator:
    """Text generator that replays a canned answer and records each call."""

    def __init__(self, answer: str | None = None, error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: list[dict] = []

    def generate(self, system, user_text, *, temperature=0, max_output_tokens=150):
        self.calls.append(
            {
                "system": system,
                "user_text": user_text,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def failing_generator():
    return StubGenerator(error=ProviderTransientError("timed out"))
