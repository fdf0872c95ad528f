"""Storage boundary consumed by the lifecycle and reporting services."""

from __future__ import annotations

from typing import Any, Protocol

from pledge.domain.models import (
    Commitment,
    CommitmentStatus,
    TrustEvent,
    TrustEventFilter,
    TrustEventType,
)


class StorageError(Exception):
    """The backing store failed; details are for logs, not for users."""


class CommitmentStore(Protocol):
    def get(self, commitment_id: str, owner_id: str) -> Commitment | None: ...

    def list_by_owner(self, owner_id: str) -> list[Commitment]: ...

    def insert(self, commitment: Commitment) -> None: ...

    def delete(self, commitment_id: str) -> None: ...

    def conditional_update(
        self,
        commitment_id: str,
        expected_status: CommitmentStatus,
        patch: dict[str, Any],
        expected_snooze_count: int | None = None,
    ) -> Commitment | None: ...


class TrustEventStore(Protocol):
    def append(self, event: TrustEvent) -> None: ...

    def query(self, event_filter: TrustEventFilter) -> list[TrustEvent]: ...

    def latest(self, owner_id: str, event_type: TrustEventType) -> TrustEvent | None: ...
