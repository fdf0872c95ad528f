"""Calendar arithmetic and display helpers shared by the resolver stages."""

from __future__ import annotations

from datetime import datetime, timedelta

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def end_of_day(moment: datetime) -> datetime:
    """Return the last millisecond of *moment*'s calendar day (23:59:59.999)."""
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def at_six_pm(moment: datetime) -> datetime:
    """Return 18:00:00 on *moment*'s calendar day (end of the working day)."""
    return moment.replace(hour=18, minute=0, second=0, microsecond=0)


def next_strict_monday(now: datetime) -> datetime:
    """Return the Monday of the following week, never *now*'s own date.

    Counts days with Sunday as 0, so a Monday ``now`` advances a full week.
    """
    sunday_based = now.isoweekday() % 7
    days_ahead = (8 - sunday_based) % 7 or 7
    return now + timedelta(days=days_ahead)


def this_weekday(now: datetime, weekday_name: str) -> datetime:
    """Return the soonest *weekday_name* on or after *now*'s date."""
    target = WEEKDAYS.index(weekday_name.lower())
    days_ahead = (target - now.weekday()) % 7
    return now + timedelta(days=days_ahead)


def next_weekday(now: datetime, weekday_name: str) -> datetime:
    """Return *weekday_name* in the Monday-to-Sunday week after *now*'s week."""
    monday = now - timedelta(days=now.weekday())
    return monday + timedelta(days=7 + WEEKDAYS.index(weekday_name.lower()))


def start_of_week(now: datetime) -> datetime:
    """Return 00:00 of the most recent Sunday (today, if *now* is a Sunday)."""
    days_back = now.isoweekday() % 7
    return start_of_day(now - timedelta(days=days_back))


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def _clock(moment: datetime) -> str:
    return f"{moment.hour % 12 or 12}:{moment.minute:02d} {'AM' if moment.hour < 12 else 'PM'}"


def format_commitment_date(deadline: datetime, now: datetime) -> str:
    """Render a deadline relative to *now*: "Today at 6:00 PM", "Friday at ..."."""
    day = deadline.date()
    today = now.date()
    if day == today:
        return f"Today at {_clock(deadline)}"
    if day == today + timedelta(days=1):
        return f"Tomorrow at {_clock(deadline)}"
    if start_of_week(now).date() <= day < start_of_week(now).date() + timedelta(days=7):
        return f"{deadline.strftime('%A')} at {_clock(deadline)}"
    return f"{deadline.strftime('%b')} {deadline.day} at {_clock(deadline)}"


def days_overdue(deadline: datetime, now: datetime) -> int:
    """Whole days elapsed since *deadline*, or 0 when it has not passed yet."""
    if deadline >= now:
        return 0
    return (now - deadline).days


def commitment_timing(deadline: datetime, now: datetime) -> str:
    """Classify a deadline as ``overdue``, ``today`` or ``upcoming``."""
    if deadline.date() == now.date():
        return "today"
    if deadline < now:
        return "overdue"
    return "upcoming"


def align_to(moment: datetime, now: datetime) -> datetime:
    """Express *moment* in the same zone convention as *now*.

    Naive values are read as wall-clock time in *now*'s zone. Aware values are
    converted into *now*'s zone. When *now* is naive it is taken as system
    local time, so aware values are converted to local time and then stripped.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=now.tzinfo)
    if now.tzinfo is None:
        return moment.astimezone().replace(tzinfo=None)
    return moment.astimezone(now.tzinfo)
