"""Domain models for commitments and the trust-event audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field, computed_field

from pledge.services import dates


class CommitmentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    RESCHEDULED = "rescheduled"


class TrustEventType(StrEnum):
    CHASED = "chased"
    COMMITMENT_KEPT = "commitment_kept"
    COMMITMENT_RESCHEDULED = "commitment_rescheduled"


SNOOZE_INTERVAL = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Commitment(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    who: str
    what: str
    deadline: datetime
    status: CommitmentStatus = CommitmentStatus.PENDING
    snooze_count: int = Field(default=0, ge=0, le=2)
    last_snoozed_at: datetime | None = None
    completed_at: datetime | None = None
    rescheduled_at: datetime | None = None
    rescheduled_to: datetime | None = None
    rescheduled_reason: str | None = None
    rescheduled_from: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status != CommitmentStatus.PENDING

    def is_overdue(self, now: datetime) -> bool:
        """Pending with a deadline at or before *now*: a broken promise."""
        return self.status == CommitmentStatus.PENDING and self.deadline <= now

    @computed_field
    @property
    def snoozed_until(self) -> datetime | None:
        """End of the current snooze window; advisory, the deadline is unchanged."""
        if self.last_snoozed_at is None:
            return None
        return self.last_snoozed_at + SNOOZE_INTERVAL


class CommitmentView(Commitment):
    """A commitment as its owner sees it at a given moment."""

    human_deadline: str
    timing: Literal["overdue", "today", "upcoming"] | None = None
    days_overdue: int = 0

    @classmethod
    def at(cls, commitment: Commitment, now: datetime) -> CommitmentView:
        pending = commitment.status == CommitmentStatus.PENDING
        return cls(
            **commitment.model_dump(exclude={"snoozed_until"}),
            human_deadline=dates.format_commitment_date(commitment.deadline, now),
            timing=dates.commitment_timing(commitment.deadline, now) if pending else None,
            days_overdue=dates.days_overdue(commitment.deadline, now) if pending else 0,
        )


class TrustEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    event_type: TrustEventType
    commitment_id: str | None = None
    event_date: datetime = Field(default_factory=_utcnow)
    details: str | None = None


class TrustEventFilter(BaseModel):
    owner_id: str
    event_type: TrustEventType | None = None
    commitment_id: str | None = None
    since: datetime | None = None


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CreateCommitmentRequest(BaseModel):
    who: str = Field(min_length=1)
    what: str = Field(min_length=1)
    when: str = Field(min_length=1)


class UpdateCommitmentRequest(BaseModel):
    status: CommitmentStatus | None = None
    rescheduled_to: str | None = None
    rescheduled_reason: str | None = None
    snooze: bool | None = None


class LogTrustEventRequest(BaseModel):
    event_type: TrustEventType
    commitment_id: str | None = None
    details: str | None = None


class DeadlinePreviewRequest(BaseModel):
    input: str = Field(min_length=1)


class DeadlinePreview(BaseModel):
    input: str
    deadline: datetime
    stage: str
    rule: str | None = None
    human: str
    current_time: datetime


class WeekStats(BaseModel):
    total: int = 0
    kept: int = 0
    rescheduled: int = 0
    broken: int = 0

    @computed_field
    @property
    def keep_rate(self) -> int | None:
        """Kept share of this week's commitments as a whole percentage."""
        if self.total == 0:
            return None
        return round(self.kept / self.total * 100)


class BrokenByPerson(BaseModel):
    who: str
    count: int


class TrustReport(BaseModel):
    days_since_chased: int | None = None
    week_stats: WeekStats = Field(default_factory=WeekStats)
    broken_by_person: list[BrokenByPerson] = Field(default_factory=list)
