"""Domain events published by commitment lifecycle transitions."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class CommitmentKept(BaseModel):
    """Fired once when a pending commitment is completed."""

    commitment_id: str
    owner_id: str
    completed_at: datetime


class CommitmentRescheduled(BaseModel):
    """Fired once when a pending commitment is forwarded to a new deadline."""

    commitment_id: str
    owner_id: str
    replacement_id: str
    rescheduled_at: datetime
    reason: str | None = None
