"""Tests for the SQLite repositories and the lifecycle running on top of them."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW
from pledge.domain.bus import EventBus
from pledge.domain.handlers import TrustEventRecorder
from pledge.domain.lifecycle import CommitmentLifecycle
from pledge.domain.models import (
    Commitment,
    CommitmentStatus,
    TrustEvent,
    TrustEventFilter,
    TrustEventType,
)
from pledge.repos.base import StorageError
from pledge.repos.sqlite import SQLiteCommitmentRepository, SQLiteTrustEventRepository, _SQLiteStore
from pledge.services.deadlines import DeadlineResolver

OWNER = "user-1"


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "pledge.db")


@pytest.fixture
def commitment_repo(db_path):
    return SQLiteCommitmentRepository(db_path)


@pytest.fixture
def trust_repo(db_path):
    return SQLiteTrustEventRepository(db_path)


def _commitment(**overrides) -> Commitment:
    defaults = dict(owner_id=OWNER, who="Alice", what="Lend the ladder", deadline=NOW + timedelta(days=1))
    defaults.update(overrides)
    return Commitment(**defaults)


class TestSQLiteCommitmentRepository:
    def test_insert_and_get_round_trip(self, commitment_repo):
        commitment = _commitment(created_at=NOW, updated_at=NOW)
        commitment_repo.insert(commitment)

        stored = commitment_repo.get(commitment.id, OWNER)

        assert stored == commitment
        assert stored.deadline.tzinfo is not None

    def test_get_scoped_to_owner(self, commitment_repo):
        commitment = _commitment()
        commitment_repo.insert(commitment)
        assert commitment_repo.get(commitment.id, "someone-else") is None

    def test_list_by_owner(self, commitment_repo):
        commitment_repo.insert(_commitment())
        commitment_repo.insert(_commitment())
        commitment_repo.insert(_commitment(owner_id="other"))
        assert len(commitment_repo.list_by_owner(OWNER)) == 2

    def test_conditional_update_applies_when_status_matches(self, commitment_repo):
        commitment = _commitment()
        commitment_repo.insert(commitment)

        updated = commitment_repo.conditional_update(
            commitment.id,
            CommitmentStatus.PENDING,
            {"status": CommitmentStatus.COMPLETED, "completed_at": NOW},
        )

        assert updated.status == CommitmentStatus.COMPLETED
        assert updated.completed_at == NOW

    def test_conditional_update_refuses_stale_status(self, commitment_repo):
        commitment = _commitment(status=CommitmentStatus.COMPLETED)
        commitment_repo.insert(commitment)

        assert (
            commitment_repo.conditional_update(
                commitment.id, CommitmentStatus.PENDING, {"status": CommitmentStatus.RESCHEDULED}
            )
            is None
        )
        assert commitment_repo.get(commitment.id, OWNER).status == CommitmentStatus.COMPLETED

    def test_conditional_update_checks_snooze_count(self, commitment_repo):
        commitment = _commitment(snooze_count=1)
        commitment_repo.insert(commitment)

        stale = commitment_repo.conditional_update(
            commitment.id, CommitmentStatus.PENDING, {"snooze_count": 1}, expected_snooze_count=0
        )
        fresh = commitment_repo.conditional_update(
            commitment.id, CommitmentStatus.PENDING, {"snooze_count": 2}, expected_snooze_count=1
        )

        assert stale is None
        assert fresh.snooze_count == 2

    def test_conditional_update_rejects_unknown_columns(self, commitment_repo):
        commitment = _commitment()
        commitment_repo.insert(commitment)
        with pytest.raises(ValueError):
            commitment_repo.conditional_update(commitment.id, CommitmentStatus.PENDING, {"owner": "x"})

    def test_delete_removes_row(self, commitment_repo):
        commitment = _commitment()
        commitment_repo.insert(commitment)
        commitment_repo.delete(commitment.id)
        assert commitment_repo.get(commitment.id, OWNER) is None

    def test_duplicate_insert_raises_storage_error(self, commitment_repo):
        commitment = _commitment()
        commitment_repo.insert(commitment)
        with pytest.raises(StorageError):
            commitment_repo.insert(commitment)


class TestSQLiteTrustEventRepository:
    def test_query_filters_and_orders_by_date(self, trust_repo):
        later = TrustEvent(owner_id=OWNER, event_type=TrustEventType.CHASED, event_date=NOW)
        earlier = TrustEvent(
            owner_id=OWNER, event_type=TrustEventType.CHASED, event_date=NOW - timedelta(days=3)
        )
        trust_repo.append(later)
        trust_repo.append(earlier)
        trust_repo.append(TrustEvent(owner_id=OWNER, event_type=TrustEventType.COMMITMENT_KEPT))
        trust_repo.append(TrustEvent(owner_id="other", event_type=TrustEventType.CHASED))

        chased = trust_repo.query(TrustEventFilter(owner_id=OWNER, event_type=TrustEventType.CHASED))

        assert [e.id for e in chased] == [earlier.id, later.id]
        assert trust_repo.latest(OWNER, TrustEventType.CHASED) == later

    def test_query_since(self, trust_repo):
        trust_repo.append(
            TrustEvent(owner_id=OWNER, event_type=TrustEventType.CHASED, event_date=NOW - timedelta(days=10))
        )
        recent = TrustEvent(owner_id=OWNER, event_type=TrustEventType.CHASED, event_date=NOW)
        trust_repo.append(recent)

        found = trust_repo.query(TrustEventFilter(owner_id=OWNER, since=NOW - timedelta(days=1)))

        assert found == [recent]


def test_lifecycle_on_sqlite(commitment_repo, trust_repo):
    bus = EventBus()
    TrustEventRecorder(bus=bus, trust_log=trust_repo)
    lifecycle = CommitmentLifecycle(commitment_repo, DeadlineResolver(), bus)

    created = lifecycle.create(OWNER, "Bob", "Return the drill", "tomorrow", NOW).value
    closed = lifecycle.reschedule(created, "friday", "Drill still in use", NOW).value
    replacement = next(c for c in commitment_repo.list_by_owner(OWNER) if c.rescheduled_from == created.id)
    kept = lifecycle.complete(replacement, NOW + timedelta(days=1))

    assert closed.status == CommitmentStatus.RESCHEDULED
    assert kept.ok
    assert not lifecycle.complete(closed, NOW).ok
    types = [e.event_type for e in trust_repo.query(TrustEventFilter(owner_id=OWNER))]
    assert types == [TrustEventType.COMMITMENT_RESCHEDULED, TrustEventType.COMMITMENT_KEPT]


def test_store_base_needs_a_schema(db_path):
    with pytest.raises(TypeError):
        _SQLiteStore(db_path)
