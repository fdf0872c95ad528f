"""In-memory repositories for commitments and trust events."""

from __future__ import annotations

import threading
from typing import Any

from pledge.domain.models import (
    Commitment,
    CommitmentStatus,
    TrustEvent,
    TrustEventFilter,
    TrustEventType,
)


class CommitmentRepository:
    """Dict-backed store for Commitment instances, keyed by id.

    Reads hand out copies; the only way to change a stored commitment is
    :meth:`conditional_update`, which checks and writes under one lock.
    """

    def __init__(self) -> None:
        self._store: dict[str, Commitment] = {}
        self._lock = threading.Lock()

    def insert(self, commitment: Commitment) -> None:
        with self._lock:
            self._store[commitment.id] = commitment.model_copy()

    def get(self, commitment_id: str, owner_id: str) -> Commitment | None:
        with self._lock:
            stored = self._store.get(commitment_id)
        if stored is None or stored.owner_id != owner_id:
            return None
        return stored.model_copy()

    def list_by_owner(self, owner_id: str) -> list[Commitment]:
        with self._lock:
            stored = list(self._store.values())
        return [c.model_copy() for c in stored if c.owner_id == owner_id]

    def delete(self, commitment_id: str) -> None:
        with self._lock:
            self._store.pop(commitment_id, None)

    def conditional_update(
        self,
        commitment_id: str,
        expected_status: CommitmentStatus,
        patch: dict[str, Any],
        expected_snooze_count: int | None = None,
    ) -> Commitment | None:
        """Apply *patch* only if the stored row still matches the expectations.

        Returns the updated commitment, or ``None`` when the row is missing or
        another writer got there first.
        """
        with self._lock:
            stored = self._store.get(commitment_id)
            if stored is None or stored.status != expected_status:
                return None
            if expected_snooze_count is not None and stored.snooze_count != expected_snooze_count:
                return None
            updated = stored.model_copy(update=patch)
            self._store[commitment_id] = updated
            return updated.model_copy()

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class TrustEventRepository:
    """Append-only, list-backed store for TrustEvent instances."""

    def __init__(self) -> None:
        self._events: list[TrustEvent] = []
        self._lock = threading.Lock()

    def append(self, event: TrustEvent) -> None:
        with self._lock:
            self._events.append(event.model_copy())

    def query(self, event_filter: TrustEventFilter) -> list[TrustEvent]:
        with self._lock:
            events = list(self._events)
        matches = [
            e.model_copy()
            for e in events
            if e.owner_id == event_filter.owner_id
            and (event_filter.event_type is None or e.event_type == event_filter.event_type)
            and (event_filter.commitment_id is None or e.commitment_id == event_filter.commitment_id)
            and (event_filter.since is None or e.event_date >= event_filter.since)
        ]
        return sorted(matches, key=lambda e: e.event_date)

    def latest(self, owner_id: str, event_type: TrustEventType) -> TrustEvent | None:
        events = self.query(TrustEventFilter(owner_id=owner_id, event_type=event_type))
        return events[-1] if events else None

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
