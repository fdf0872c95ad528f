"""Commitment lifecycle: creation policy and the pending → terminal transitions.

Every transition is a conditional update against the persisted status, so of
two racing operations on one commitment exactly one applies and the other
gets an ``illegal_transition`` outcome.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime

from pledge.domain.bus import EventBus
from pledge.domain.events import CommitmentKept, CommitmentRescheduled
from pledge.domain.models import (
    Commitment,
    CommitmentStatus,
    UpdateCommitmentRequest,
)
from pledge.domain.outcomes import ErrorKind, Outcome
from pledge.repos.base import CommitmentStore, StorageError
from pledge.services.deadlines import DeadlineResolver

logger = logging.getLogger(__name__)

OVERDUE_LIMIT = 3
MAX_SNOOZES = 2

POLICY_BLOCKED_REASON = f"You have {OVERDUE_LIMIT} broken promises. Fix those first."
GENERIC_FAILURE_REASON = "Internal server error"


def _storage_guard(method):
    """Report a storage failure as an opaque ``internal`` outcome."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except StorageError:
            logger.exception("Storage failure in %s", method.__name__)
            return Outcome.failure(ErrorKind.INTERNAL, GENERIC_FAILURE_REASON)

    return wrapper


class CommitmentLifecycle:
    def __init__(
        self,
        commitments: CommitmentStore,
        resolver: DeadlineResolver,
        bus: EventBus,
    ) -> None:
        self.commitments = commitments
        self.resolver = resolver
        self.bus = bus

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @_storage_guard
    def get(self, owner_id: str, commitment_id: str) -> Outcome[Commitment]:
        commitment = self.commitments.get(commitment_id, owner_id)
        if commitment is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Commitment not found")
        return Outcome.success(commitment)

    def list_for_owner(self, owner_id: str) -> list[Commitment]:
        """All of the owner's commitments, latest deadline first."""
        return sorted(
            self.commitments.list_by_owner(owner_id),
            key=lambda c: c.deadline,
            reverse=True,
        )

    def overdue_count(self, owner_id: str, now: datetime) -> int:
        return sum(1 for c in self.commitments.list_by_owner(owner_id) if c.is_overdue(now))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @_storage_guard
    def create(
        self, owner_id: str, who: str, what: str, when_text: str, now: datetime
    ) -> Outcome[Commitment]:
        if not who or not who.strip():
            return Outcome.failure(ErrorKind.VALIDATION, "Who is required")
        if not what or not what.strip():
            return Outcome.failure(ErrorKind.VALIDATION, "What is required")

        resolution = self.resolver.resolve_strict(when_text or "", now)
        if not resolution.resolved:
            logger.info("Rejected commitment for %s: unparseable %r", owner_id, when_text)
            return Outcome.failure(ErrorKind.VALIDATION, "Invalid date format")

        overdue = self.overdue_count(owner_id, now)
        if overdue >= OVERDUE_LIMIT:
            logger.info("Blocked commitment for %s: %d overdue", owner_id, overdue)
            return Outcome.failure(ErrorKind.POLICY_BLOCKED, POLICY_BLOCKED_REASON)

        commitment = Commitment(
            owner_id=owner_id,
            who=who.strip(),
            what=what.strip(),
            deadline=resolution.instant,
            created_at=now,
            updated_at=now,
        )
        self.commitments.insert(commitment)
        logger.info("Commitment %s created, due %s", commitment.id, commitment.deadline.isoformat())
        return Outcome.success(commitment)

    @_storage_guard
    def complete(self, commitment: Commitment, now: datetime) -> Outcome[Commitment]:
        if commitment.is_terminal:
            return self._illegal(commitment)

        updated = self.commitments.conditional_update(
            commitment.id,
            CommitmentStatus.PENDING,
            {"status": CommitmentStatus.COMPLETED, "completed_at": now, "updated_at": now},
            expected_snooze_count=commitment.snooze_count,
        )
        if updated is None:
            return self._lost_race(commitment)

        self.bus.publish(
            CommitmentKept(commitment_id=updated.id, owner_id=updated.owner_id, completed_at=now)
        )
        logger.info("Commitment %s completed", updated.id)
        return Outcome.success(updated)

    @_storage_guard
    def snooze(self, commitment: Commitment, now: datetime) -> Outcome[Commitment]:
        """Count one snooze; the deadline itself is left where it is."""
        if commitment.is_terminal:
            return self._illegal(commitment)
        if commitment.snooze_count >= MAX_SNOOZES:
            return Outcome.failure(ErrorKind.ILLEGAL_TRANSITION, "Maximum snoozes reached")

        updated = self.commitments.conditional_update(
            commitment.id,
            CommitmentStatus.PENDING,
            {
                "snooze_count": commitment.snooze_count + 1,
                "last_snoozed_at": now,
                "updated_at": now,
            },
            expected_snooze_count=commitment.snooze_count,
        )
        if updated is None:
            return self._lost_race(commitment)

        logger.info("Commitment %s snoozed (%d/%d)", updated.id, updated.snooze_count, MAX_SNOOZES)
        return Outcome.success(updated)

    @_storage_guard
    def reschedule(
        self,
        commitment: Commitment,
        new_when_text: str,
        reason: str | None,
        now: datetime,
    ) -> Outcome[Commitment]:
        """Close *commitment* as rescheduled and forward it to a new pending one.

        Returns the closed original; the replacement is reachable through
        ``rescheduled_from`` on the owner's commitments.
        """
        if commitment.is_terminal:
            return self._illegal(commitment)

        resolution = self.resolver.resolve_strict(new_when_text or "", now)
        if not resolution.resolved:
            return Outcome.failure(ErrorKind.VALIDATION, "Invalid reschedule date")
        new_deadline = resolution.instant

        # The replacement goes in first so the original is never closed without one.
        replacement = Commitment(
            owner_id=commitment.owner_id,
            who=commitment.who,
            what=commitment.what,
            deadline=new_deadline,
            rescheduled_from=commitment.id,
            created_at=now,
            updated_at=now,
        )
        self.commitments.insert(replacement)
        try:
            updated = self.commitments.conditional_update(
                commitment.id,
                CommitmentStatus.PENDING,
                {
                    "status": CommitmentStatus.RESCHEDULED,
                    "rescheduled_at": now,
                    "rescheduled_to": new_deadline,
                    "rescheduled_reason": reason,
                    "updated_at": now,
                },
                expected_snooze_count=commitment.snooze_count,
            )
        except StorageError:
            self._discard(replacement)
            raise
        if updated is None:
            self._discard(replacement)
            return self._lost_race(commitment)

        self.bus.publish(
            CommitmentRescheduled(
                commitment_id=updated.id,
                owner_id=updated.owner_id,
                replacement_id=replacement.id,
                rescheduled_at=now,
                reason=reason,
            )
        )
        logger.info(
            "Commitment %s rescheduled to %s as %s",
            updated.id,
            new_deadline.isoformat(),
            replacement.id,
        )
        return Outcome.success(updated)

    @_storage_guard
    def apply_update(
        self,
        owner_id: str,
        commitment_id: str,
        request: UpdateCommitmentRequest,
        now: datetime,
    ) -> Outcome[Commitment]:
        """Dispatch one of the three update shapes the API accepts."""
        found = self.get(owner_id, commitment_id)
        if not found.ok:
            return found
        commitment = found.value

        if request.snooze:
            return self.snooze(commitment, now)
        if request.status == CommitmentStatus.COMPLETED:
            return self.complete(commitment, now)
        if request.status == CommitmentStatus.RESCHEDULED and request.rescheduled_to:
            return self.reschedule(commitment, request.rescheduled_to, request.rescheduled_reason, now)
        return Outcome.failure(ErrorKind.VALIDATION, "Invalid update")

    # ------------------------------------------------------------------
    # Rejections
    # ------------------------------------------------------------------

    @staticmethod
    def _illegal(commitment: Commitment) -> Outcome[Commitment]:
        logger.info("Rejected transition on %s commitment %s", commitment.status, commitment.id)
        return Outcome.failure(
            ErrorKind.ILLEGAL_TRANSITION, f"Commitment is already {commitment.status}"
        )

    def _lost_race(self, commitment: Commitment) -> Outcome[Commitment]:
        current = self.commitments.get(commitment.id, commitment.owner_id)
        if current is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Commitment not found")
        logger.warning("Concurrent update on commitment %s; now %s", current.id, current.status)
        if current.is_terminal:
            return self._illegal(current)
        if current.snooze_count >= MAX_SNOOZES:
            return Outcome.failure(ErrorKind.ILLEGAL_TRANSITION, "Maximum snoozes reached")
        return Outcome.failure(ErrorKind.ILLEGAL_TRANSITION, "Commitment was changed concurrently")

    def _discard(self, replacement: Commitment) -> None:
        """Remove a replacement whose original could not be closed."""
        try:
            self.commitments.delete(replacement.id)
        except StorageError:
            logger.exception("Could not remove orphaned replacement %s", replacement.id)
