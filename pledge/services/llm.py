"""Text-generation boundary used by the AI deadline stage."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ProviderTransientError(Exception):
    """The text-generation provider failed, timed out or returned nothing."""


class TextGenerator(Protocol):
    def generate(
        self,
        system: str,
        user_text: str,
        *,
        temperature: float = 0,
        max_output_tokens: int = 150,
    ) -> str: ...


class OpenAITextGenerator:
    """Chat-completions client bounded by a request timeout and no retries."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 5.0) -> None:
        from openai import OpenAI

        self.model = model
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def generate(
        self,
        system: str,
        user_text: str,
        *,
        temperature: float = 0,
        max_output_tokens: int = 150,
    ) -> str:
        from openai import OpenAIError

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user_text},
                ],
                temperature=temperature,
                max_tokens=max_output_tokens,
            )
        except OpenAIError as exc:
            raise ProviderTransientError(str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderTransientError("empty completion")
        logger.debug("LLM raw response: %s", content)
        return content
