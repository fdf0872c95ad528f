"""Rule-based deadline stages: the dateparser leaf and the phrase-pinning rules.

Both stages are deterministic for a given ``(text, now)`` pair and never
raise to signal "no match"; they return a :class:`StageResult` instead.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

import dateparser
from pydantic import BaseModel

from pledge.services.dates import (
    WEEKDAYS,
    align_to,
    at_six_pm,
    end_of_day,
    next_strict_monday,
    next_weekday,
    start_of_day,
    this_weekday,
)

logger = logging.getLogger(__name__)

_WEEKDAY_ALTERNATION = "monday|tuesday|wednesday|thursday|friday|saturday|sunday"

_BARE_WEEKDAY_RE = re.compile(rf"^(by )?({_WEEKDAY_ALTERNATION})$", re.IGNORECASE)
_LEADING_WEEKDAY_RE = re.compile(rf"^({_WEEKDAY_ALTERNATION})", re.IGNORECASE)
_LEADING_MONTH_RE = re.compile(
    r"^(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)", re.IGNORECASE
)
_ORDINAL_DAY_RE = re.compile(r"^\d{1,2}(st|nd|rd|th)?$", re.IGNORECASE)

_CLOCK_12H_RE = re.compile(r"\d{1,2}(:\d{2})?\s*(am|pm)", re.IGNORECASE)
_CLOCK_24H_RE = re.compile(r"\d{1,2}:\d{2}")
_DAY_SEGMENT_RE = re.compile(r"\b(morning|afternoon|evening|night)\b", re.IGNORECASE)

_EOD_RE = re.compile(r"\b(eod|end of day)\b", re.IGNORECASE)
_LEADING_BY_RE = re.compile(r"^by\b\s*", re.IGNORECASE)

_RELATIVE_DAY_RE = re.compile(
    r"^(?:(?P<modifier>this|next) )?"
    rf"(?P<day>{_WEEKDAY_ALTERNATION}|weekend|today|tonight|tomorrow|morning|afternoon|evening)"
    r"(?: (?:in the |at )?(?P<rest>.+))?$"
)

# Hour implied by a named part of the day.
DAY_SEGMENT_HOURS = {"morning": 6, "afternoon": 15, "evening": 20, "night": 22, "tonight": 22}
IMPLIED_HOUR = 12

# Phrases that depend on a work-calendar convention dateparser does not encode.
WORK_CALENDAR_MARKERS = ("workday", "work day", "business hours", "cob", "eow", "eom")

NEXT_WEEK_LITERALS = ("next week", "next monday")


class StageResult(BaseModel):
    """Tagged outcome of one resolver stage: resolved instant or no match."""

    stage: str
    instant: datetime | None = None
    rule: str | None = None
    reason: str | None = None

    @property
    def resolved(self) -> bool:
        return self.instant is not None

    @classmethod
    def matched(cls, stage: str, instant: datetime, rule: str | None = None) -> StageResult:
        return cls(stage=stage, instant=instant, rule=rule)

    @classmethod
    def no_match(cls, stage: str, reason: str) -> StageResult:
        return cls(stage=stage, reason=reason)


def needs_work_calendar(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in WORK_CALENDAR_MARKERS)


def has_explicit_time(text: str) -> bool:
    """True when *text* names a clock time or a segment of the day."""
    return bool(
        _CLOCK_12H_RE.search(text)
        or _CLOCK_24H_RE.search(text)
        or _DAY_SEGMENT_RE.search(text)
    )


class RuleBasedResolver:
    """Deterministic natural-language parse of *text* relative to *now*."""

    name = "rules"

    _settings = {
        "PREFER_DATES_FROM": "future",
        "RETURN_AS_TIMEZONE_AWARE": False,
    }

    def resolve(self, text: str, now: datetime) -> StageResult:
        lowered = text.strip().lower()
        mentions_eod = bool(_EOD_RE.search(lowered))

        cleaned = _EOD_RE.sub(" ", lowered)
        cleaned = _LEADING_BY_RE.sub("", cleaned.strip())
        cleaned = " ".join(cleaned.split())

        if not cleaned:
            if mentions_eod:
                return StageResult.matched(self.name, now, rule="eod_today")
            return StageResult.no_match(self.name, "empty input")

        try:
            relative = self._relative_day(cleaned, now)
            if relative is not None:
                return StageResult.matched(self.name, relative, rule="relative_day")
            parsed = self._parse(cleaned, now)
        except Exception as exc:  # dateparser raises assorted errors on odd input
            logger.debug("dateparser failed on %r: %s", cleaned, exc)
            return StageResult.no_match(self.name, "parser error")

        if parsed is None:
            return StageResult.no_match(self.name, "unrecognised")
        return StageResult.matched(self.name, align_to(parsed, now))

    def _parse(self, text: str, base: datetime) -> datetime | None:
        settings = dict(self._settings, RELATIVE_BASE=base.replace(tzinfo=None))
        return dateparser.parse(text, languages=["en"], settings=settings)

    def _relative_day(self, cleaned: str, now: datetime) -> datetime | None:
        """Read "this/next <weekday>", "weekend", "tonight" and "<day> <part of day>".

        dateparser reads none of these. Returns ``None`` for anything else so
        the general parse gets its turn.
        """
        match = _RELATIVE_DAY_RE.match(cleaned)
        if match is None:
            return None
        modifier, day, rest = match.group("modifier", "day", "rest")
        named_part = day in DAY_SEGMENT_HOURS or rest in DAY_SEGMENT_HOURS
        if not (modifier or day == "weekend" or named_part):
            return None

        if day == "weekend" or day in WEEKDAYS:
            name = "saturday" if day == "weekend" else day
            date = next_weekday(now, name) if modifier == "next" else this_weekday(now, name)
        elif modifier == "next":
            return None
        elif day == "tomorrow":
            date = now + timedelta(days=1)
        else:
            date = now

        if rest is None:
            return start_of_day(date).replace(hour=DAY_SEGMENT_HOURS.get(day, IMPLIED_HOUR))
        if rest in DAY_SEGMENT_HOURS:
            return start_of_day(date).replace(hour=DAY_SEGMENT_HOURS[rest])

        # "next friday 5pm": read the clock against that day's midnight
        parsed = self._parse(rest, start_of_day(date))
        if parsed is None or parsed.date() != date.date():
            return None
        return align_to(parsed, now)


class PhraseResolver:
    """Special literal forms plus time-of-day pinning around :class:`RuleBasedResolver`.

    Refuses (``no_match`` with reason ``needs_ai``) phrases that need work
    calendar semantics, and whatever the rule-based parser cannot read.
    """

    name = "phrase"

    def __init__(self, rules: RuleBasedResolver | None = None) -> None:
        self.rules = rules or RuleBasedResolver()

    def resolve(self, text: str, now: datetime) -> StageResult:
        lowered = text.strip().lower()

        # -- "next week" / "next monday" -----------------------------------
        if lowered in NEXT_WEEK_LITERALS:
            return StageResult.matched(
                self.name, end_of_day(next_strict_monday(now)), rule="next_week"
            )

        # -- work-calendar phrases -----------------------------------------
        if needs_work_calendar(lowered):
            return StageResult.no_match(self.name, "needs_ai")

        # -- bare weekday: this week's occurrence, today included ----------
        bare = _BARE_WEEKDAY_RE.match(lowered)
        if bare:
            day = this_weekday(now, bare.group(2))
            return StageResult.matched(self.name, end_of_day(day), rule="bare_weekday")

        # -- general parse -------------------------------------------------
        candidate = self.rules.resolve(text, now)
        if not candidate.resolved:
            return StageResult.no_match(self.name, candidate.reason or "unrecognised")

        instant, rule = self._pin(lowered, candidate.instant, now)
        return StageResult.matched(self.name, instant, rule=rule)

    @staticmethod
    def _pin(lowered: str, candidate: datetime, now: datetime) -> tuple[datetime, str]:
        """Pin a parsed candidate to a time of day when the text names none."""
        if has_explicit_time(lowered):
            return candidate, "explicit_time"

        if "eod" in lowered or "end of day" in lowered:
            return at_six_pm(candidate), "end_of_work_day"

        if "today" in lowered or "tomorrow" in lowered or "by" in lowered:
            return end_of_day(candidate), "end_of_calendar_day"

        if (
            _LEADING_WEEKDAY_RE.match(lowered)
            or _LEADING_MONTH_RE.match(lowered)
            or _ORDINAL_DAY_RE.match(lowered)
        ):
            return end_of_day(candidate), "end_of_named_day"

        if _BARE_WEEKDAY_RE.match(lowered):
            if candidate.date() < now.date():
                return end_of_day(candidate + timedelta(days=7)), "rolled_weekday"
            return end_of_day(candidate), "end_of_named_day"

        return candidate, "parsed"
