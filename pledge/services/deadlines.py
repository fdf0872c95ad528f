"""Deadline resolution cascade: phrase rules, language-model fallback, last resort.

``DeadlineResolver.resolve`` is total: whatever the text and whatever the
provider does, it returns an instant. ``resolve_strict`` only runs the
deterministic phrase stage and reports a miss instead of guessing.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, Protocol

from dateutil.parser import isoparse

from pledge.domain.models import DeadlinePreview
from pledge.services.dates import (
    align_to,
    at_six_pm,
    end_of_day,
    format_commitment_date,
    next_strict_monday,
)
from pledge.services.llm import ProviderTransientError, TextGenerator
from pledge.services.rules import PhraseResolver, StageResult

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
You are a date parser. Today is {weekday}, {current}.
Convert the user's input into an ISO datetime. Follow these rules:
- today / by today → 23:59 that day
- tomorrow → 23:59 that day
- EOD / end of day → 18:00 that day
- workday / work day / business hours / "end of [day] workday" / COB → 18:00 that day
- next week → next Monday, 23:59
- EOW → Friday, 18:00
- EOM → last calendar day of month, 23:59
- by <day> / <day> → next occurrence of that weekday at 23:59 (roll to next week if this week's occurrence already passed)
- no time, no work context → 23:59 of the resolved day

Respond ONLY with the ISO datetime string, nothing else.
"""

MAX_OUTPUT_TOKENS = 150


class ResolverStage(Protocol):
    name: str

    def resolve(self, text: str, now: datetime) -> StageResult: ...


@contextmanager
def stage_span(stage: str, text: str) -> Iterator[dict]:
    """Time one stage attempt and log its outcome.

    The body stores its :class:`StageResult` under ``span["result"]``.
    """
    span: dict = {"stage": stage, "result": None}
    started = time.perf_counter()
    try:
        yield span
    finally:
        result: StageResult | None = span["result"]
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        outcome = "resolved" if result is not None and result.resolved else "no_match"
        logger.debug(
            "deadline stage %s → %s (%.1f ms)",
            stage,
            outcome,
            elapsed_ms,
            extra={
                "stage": stage,
                "outcome": outcome,
                "rule": result.rule if result else None,
                "reason": result.reason if result else None,
                "elapsed_ms": elapsed_ms,
                "input_text": text,
            },
        )


def _clean_llm_response(raw_text: str) -> str:
    """Remove whitespace and markdown code fences around the model's answer."""
    cleaned = raw_text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`").strip()
    return cleaned


class AIFallbackResolver:
    """Ask the text-generation collaborator to apply the fixed phrase rule table."""

    name = "ai"

    def __init__(
        self,
        generator: TextGenerator | None,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ) -> None:
        self.generator = generator
        self.max_output_tokens = max_output_tokens

    @staticmethod
    def build_context(now: datetime) -> str:
        return _SYSTEM_PROMPT.format(
            weekday=now.strftime("%A"),
            current=now.strftime("%Y-%m-%d %H:%M"),
        )

    def resolve(self, text: str, now: datetime) -> StageResult:
        if self.generator is None:
            return StageResult.no_match(self.name, "disabled")

        try:
            raw = self.generator.generate(
                self.build_context(now),
                text,
                temperature=0,
                max_output_tokens=self.max_output_tokens,
            )
        except ProviderTransientError as exc:
            logger.warning("AI deadline fallback failed for %r: %s", text, exc)
            return StageResult.no_match(self.name, "provider error")

        answer = _clean_llm_response(raw or "")
        if not answer or len(answer.split()) != 1:
            logger.warning("AI deadline answer is not a single token: %r", raw)
            return StageResult.no_match(self.name, "unexpected answer")
        try:
            parsed = isoparse(answer)
        except (ValueError, OverflowError):
            logger.warning("AI deadline answer is not ISO-8601: %r", answer)
            return StageResult.no_match(self.name, "unparseable answer")

        return StageResult.matched(self.name, align_to(parsed, now))


class LastResortResolver:
    """Local keyword guesses; always resolves."""

    name = "last_resort"

    def resolve(self, text: str, now: datetime) -> StageResult:
        lowered = text.lower()
        if "today" in lowered:
            return StageResult.matched(self.name, end_of_day(now), rule="today")
        if "tomorrow" in lowered:
            return StageResult.matched(
                self.name, end_of_day(now + timedelta(days=1)), rule="tomorrow"
            )
        if "eod" in lowered or "end of day" in lowered:
            return StageResult.matched(self.name, at_six_pm(now), rule="end_of_work_day")
        if "next week" in lowered:
            return StageResult.matched(
                self.name, end_of_day(next_strict_monday(now)), rule="next_week"
            )
        return StageResult.matched(self.name, end_of_day(now), rule="default")


class DeadlineResolver:
    """Ordered cascade of resolver stages; the first resolved result wins."""

    def __init__(
        self,
        generator: TextGenerator | None = None,
        phrase: PhraseResolver | None = None,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ) -> None:
        self.phrase = phrase or PhraseResolver()
        self.stages: list[ResolverStage] = [
            self.phrase,
            AIFallbackResolver(generator, max_output_tokens),
            LastResortResolver(),
        ]

    def resolve_with_stage(self, text: str, now: datetime) -> StageResult:
        for stage in self.stages:
            result = self._attempt(stage, text, now)
            if result.resolved:
                return result
        return StageResult.matched("floor", end_of_day(now))

    def resolve(self, text: str, now: datetime) -> datetime:
        """Resolve *text* to an instant; never raises."""
        return self.resolve_with_stage(text, now).instant

    def resolve_strict(self, text: str, now: datetime) -> StageResult:
        """Resolve with the deterministic phrase rules only; may return ``no_match``."""
        return self._attempt(self.phrase, text, now)

    def preview(self, text: str, now: datetime) -> DeadlinePreview:
        result = self.resolve_with_stage(text, now)
        return DeadlinePreview(
            input=text,
            deadline=result.instant,
            stage=result.stage,
            rule=result.rule,
            human=format_commitment_date(result.instant, now),
            current_time=now,
        )

    @staticmethod
    def _attempt(stage: ResolverStage, text: str, now: datetime) -> StageResult:
        with stage_span(stage.name, text) as span:
            try:
                span["result"] = stage.resolve(text or "", now)
            except Exception:
                logger.exception("Deadline stage %s raised on %r", stage.name, text)
                span["result"] = StageResult.no_match(stage.name, "stage error")
            return span["result"]
