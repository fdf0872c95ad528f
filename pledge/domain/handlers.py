"""Domain event handlers — wired up at application startup."""

from __future__ import annotations

import logging

from pledge.domain.bus import EventBus
from pledge.domain.events import CommitmentKept, CommitmentRescheduled
from pledge.domain.models import TrustEvent, TrustEventType
from pledge.repos.base import TrustEventStore

logger = logging.getLogger(__name__)


class TrustEventRecorder:
    """Turns lifecycle transitions into trust-event audit records.

    One transition event in, exactly one TrustEvent appended.
    """

    def __init__(self, bus: EventBus, trust_log: TrustEventStore) -> None:
        self.bus = bus
        self.trust_log = trust_log
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(CommitmentKept, self.on_commitment_kept)
        self.bus.subscribe(CommitmentRescheduled, self.on_commitment_rescheduled)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_commitment_kept(self, event: CommitmentKept) -> None:
        self.trust_log.append(
            TrustEvent(
                owner_id=event.owner_id,
                event_type=TrustEventType.COMMITMENT_KEPT,
                commitment_id=event.commitment_id,
                event_date=event.completed_at,
            )
        )
        logger.info("Trust event: commitment %s kept", event.commitment_id)

    def on_commitment_rescheduled(self, event: CommitmentRescheduled) -> None:
        self.trust_log.append(
            TrustEvent(
                owner_id=event.owner_id,
                event_type=TrustEventType.COMMITMENT_RESCHEDULED,
                commitment_id=event.commitment_id,
                event_date=event.rescheduled_at,
                details=event.reason,
            )
        )
        logger.info(
            "Trust event: commitment %s rescheduled as %s",
            event.commitment_id,
            event.replacement_id,
        )
