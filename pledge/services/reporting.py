"""Trust reporting over the commitment set and the trust-event log."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime

from pledge.domain.models import (
    BrokenByPerson,
    Commitment,
    CommitmentStatus,
    LogTrustEventRequest,
    TrustEvent,
    TrustEventType,
    TrustReport,
    WeekStats,
)
from pledge.repos.base import TrustEventStore
from pledge.services.dates import start_of_week

logger = logging.getLogger(__name__)

BROKEN_BY_PERSON_LIMIT = 5


def log_event(
    trust_log: TrustEventStore,
    owner_id: str,
    request: LogTrustEventRequest,
    now: datetime,
) -> TrustEvent:
    """Record an event reported from outside the lifecycle, e.g. being chased."""
    event = TrustEvent(
        owner_id=owner_id,
        event_type=request.event_type,
        commitment_id=request.commitment_id,
        event_date=now,
        details=request.details,
    )
    trust_log.append(event)
    logger.info("Trust event %s logged for %s", event.event_type, owner_id)
    return event


def days_since_chased(trust_log: TrustEventStore, owner_id: str, now: datetime) -> int | None:
    last = trust_log.latest(owner_id, TrustEventType.CHASED)
    if last is None:
        return None
    return (now - last.event_date).days


def week_stats(commitments: list[Commitment], now: datetime) -> WeekStats:
    """Status counts for commitments created since the most recent Sunday 00:00."""
    week_start = start_of_week(now)
    this_week = [c for c in commitments if c.created_at >= week_start]
    return WeekStats(
        total=len(this_week),
        kept=sum(1 for c in this_week if c.status == CommitmentStatus.COMPLETED),
        rescheduled=sum(1 for c in this_week if c.status == CommitmentStatus.RESCHEDULED),
        broken=sum(
            1 for c in this_week if c.status == CommitmentStatus.PENDING and c.deadline < now
        ),
    )


def broken_by_person(
    commitments: list[Commitment],
    now: datetime,
    limit: int = BROKEN_BY_PERSON_LIMIT,
) -> list[BrokenByPerson]:
    """People owed the most overdue promises; count descending, then name."""
    counts = Counter(c.who for c in commitments if c.is_overdue(now))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [BrokenByPerson(who=who, count=count) for who, count in ranked[:limit]]


def build_trust_report(
    trust_log: TrustEventStore,
    commitments: list[Commitment],
    owner_id: str,
    now: datetime,
) -> TrustReport:
    return TrustReport(
        days_since_chased=days_since_chased(trust_log, owner_id, now),
        week_stats=week_stats(commitments, now),
        broken_by_person=broken_by_person(commitments, now),
    )
