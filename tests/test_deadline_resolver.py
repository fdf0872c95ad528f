"""Tests for the full deadline cascade, with the language model stubbed out."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, StubGenerator
from pledge.services.deadlines import AIFallbackResolver, DeadlineResolver, LastResortResolver
from pledge.services.llm import ProviderTransientError


def _eod(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


# ---------------------------------------------------------------------------
# Totality
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text",
    ["", "   ", "xyzzy plugh", "EOW", "by COB", "🙂", "a" * 500, "31st of Februarember"],
)
def test_resolve_always_returns_an_instant(text, failing_generator):
    resolver = DeadlineResolver(generator=failing_generator)
    result = resolver.resolve(text, NOW)
    assert isinstance(result, datetime)


def test_resolve_survives_a_stage_that_raises():
    class Exploding:
        def generate(self, *args, **kwargs):
            raise RuntimeError("boom")

    resolver = DeadlineResolver(generator=Exploding())
    assert resolver.resolve("EOW", NOW) == _eod(NOW)


# ---------------------------------------------------------------------------
# Rule-table properties
# ---------------------------------------------------------------------------


def test_today_and_tomorrow():
    resolver = DeadlineResolver()
    assert resolver.resolve("today", NOW) == _eod(NOW)
    assert resolver.resolve("tomorrow", NOW) == _eod(NOW + timedelta(days=1))


def test_eod_is_six_pm_same_day():
    result = DeadlineResolver().resolve("EOD", NOW)
    assert result.date() == NOW.date()
    assert (result.hour, result.minute, result.second) == (18, 0, 0)


def test_next_week_from_monday_is_a_full_week_ahead():
    monday = datetime(2024, 1, 8, 8, 0, tzinfo=timezone.utc)
    assert DeadlineResolver().resolve("next week", monday) == _eod(monday + timedelta(days=7))


def test_weekday_shortcut_examples():
    t = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)
    resolver = DeadlineResolver()
    assert resolver.resolve("Friday", t) == datetime(2024, 1, 12, 23, 59, 59, 999000, tzinfo=timezone.utc)
    assert resolver.resolve("by Monday", t) == datetime(2024, 1, 15, 23, 59, 59, 999000, tzinfo=timezone.utc)


def test_resolve_is_deterministic_without_ai():
    resolver = DeadlineResolver()
    assert resolver.resolve("tomorrow eod", NOW) == resolver.resolve("tomorrow eod", NOW)


# ---------------------------------------------------------------------------
# AI fallback
# ---------------------------------------------------------------------------


def test_work_calendar_phrase_goes_to_ai():
    generator = StubGenerator(answer="2024-01-12T18:00:00")
    result = DeadlineResolver(generator=generator).resolve_with_stage("by EOW", NOW)

    assert result.stage == "ai"
    assert result.instant == datetime(2024, 1, 12, 18, 0, tzinfo=timezone.utc)
    assert len(generator.calls) == 1
    assert generator.calls[0]["user_text"] == "by EOW"


def test_ai_context_carries_rule_table_and_sampling_limits():
    generator = StubGenerator(answer="2024-01-31T23:59:00")
    DeadlineResolver(generator=generator).resolve("EOM", NOW)

    call = generator.calls[0]
    assert call["temperature"] == 0
    assert call["max_output_tokens"] == 150
    assert "Today is Wednesday, 2024-01-10 12:00" in call["system"]
    assert "- EOW → Friday, 18:00" in call["system"]
    assert "- EOM → last calendar day of month, 23:59" in call["system"]
    assert "- next week → next Monday, 23:59" in call["system"]


def test_ai_not_called_when_phrase_resolves():
    generator = StubGenerator(answer="2030-01-01T00:00:00")
    DeadlineResolver(generator=generator).resolve("tomorrow", NOW)
    assert generator.calls == []


def test_ai_answer_in_code_fence_is_accepted():
    generator = StubGenerator(answer="```\n2024-01-12T18:00:00Z\n```")
    result = DeadlineResolver(generator=generator).resolve("COB friday", NOW)
    assert result == datetime(2024, 1, 12, 18, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "answer",
    ["Friday at 6pm", "not a date", "", "2024-01-12T18:00:00 because EOW means Friday"],
)
def test_unusable_ai_answer_falls_to_last_resort(answer):
    generator = StubGenerator(answer=answer)
    result = DeadlineResolver(generator=generator).resolve_with_stage("EOW", NOW)
    assert result.stage == "last_resort"
    assert result.instant == _eod(NOW)


def test_provider_timeout_falls_to_last_resort(failing_generator):
    result = DeadlineResolver(generator=failing_generator).resolve_with_stage("eod workday", NOW)
    assert result.stage == "last_resort"
    assert result.instant == NOW.replace(hour=18, minute=0, second=0, microsecond=0)


def test_ai_disabled_without_generator():
    result = AIFallbackResolver(None).resolve("EOW", NOW)
    assert not result.resolved
    assert result.reason == "disabled"


def test_ai_provider_error_is_no_match():
    generator = StubGenerator(error=ProviderTransientError("503"))
    result = AIFallbackResolver(generator).resolve("EOW", NOW)
    assert not result.resolved
    assert result.reason == "provider error"


# ---------------------------------------------------------------------------
# Last resort
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text, expected",
    [
        ("sometime today-ish", _eod(NOW)),
        ("tomorrow workday", _eod(NOW + timedelta(days=1))),
        ("eom or eod", NOW.replace(hour=18, minute=0, second=0, microsecond=0)),
        ("early next week", _eod(datetime(2024, 1, 15, tzinfo=timezone.utc))),
        ("whenever", _eod(NOW)),
    ],
)
def test_last_resort_keywords(text, expected):
    assert LastResortResolver().resolve(text, NOW).instant == expected


# ---------------------------------------------------------------------------
# Strict resolution
# ---------------------------------------------------------------------------


def test_strict_never_consults_ai():
    generator = StubGenerator(answer="2024-01-12T18:00:00")
    result = DeadlineResolver(generator=generator).resolve_strict("EOW", NOW)
    assert not result.resolved
    assert generator.calls == []


def test_strict_refuses_to_guess():
    assert not DeadlineResolver().resolve_strict("xyzzy plugh", NOW).resolved


def test_strict_resolves_plain_phrases():
    result = DeadlineResolver().resolve_strict("tomorrow", NOW)
    assert result.instant == _eod(NOW + timedelta(days=1))


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


def test_preview_reports_stage_and_human_text():
    preview = DeadlineResolver().preview("EOD", NOW)
    assert preview.stage == "phrase"
    assert preview.rule == "end_of_work_day"
    assert preview.human == "Today at 6:00 PM"
    assert preview.current_time == NOW
