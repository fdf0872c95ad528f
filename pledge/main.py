"""FastAPI application — entry point for the commitment tracking service."""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import FastAPI, Header, HTTPException

from pledge.config import settings
from pledge.domain.bus import EventBus
from pledge.domain.handlers import TrustEventRecorder
from pledge.domain.lifecycle import GENERIC_FAILURE_REASON, CommitmentLifecycle
from pledge.domain.models import (
    CommitmentView,
    CreateCommitmentRequest,
    DeadlinePreview,
    DeadlinePreviewRequest,
    LogTrustEventRequest,
    TrustEvent,
    TrustEventFilter,
    TrustEventType,
    TrustReport,
    UpdateCommitmentRequest,
)
from pledge.domain.outcomes import ErrorKind, Outcome
from pledge.repos.base import StorageError
from pledge.repos.memory import CommitmentRepository, TrustEventRepository
from pledge.services.deadlines import DeadlineResolver
from pledge.services.llm import OpenAITextGenerator
from pledge.services.reporting import build_trust_report, log_event

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Pledge Commitment Service")


def _build_stores():
    if settings.DATABASE_PATH:
        from pledge.repos.sqlite import SQLiteCommitmentRepository, SQLiteTrustEventRepository

        return (
            SQLiteCommitmentRepository(settings.DATABASE_PATH),
            SQLiteTrustEventRepository(settings.DATABASE_PATH),
        )
    return CommitmentRepository(), TrustEventRepository()


def _build_generator() -> OpenAITextGenerator | None:
    if not settings.llm_enabled:
        logger.info("LLM_API_KEY not set; AI deadline fallback disabled")
        return None
    return OpenAITextGenerator(
        api_key=settings.LLM_API_KEY,
        model=settings.LLM_MODEL,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )


# ── Singletons (created at import time for simplicity) ────────────────
commitment_repo, trust_event_repo = _build_stores()
event_bus = EventBus()
trust_recorder = TrustEventRecorder(bus=event_bus, trust_log=trust_event_repo)
deadline_resolver = DeadlineResolver(
    generator=_build_generator(),
    max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
)
lifecycle = CommitmentLifecycle(
    commitments=commitment_repo,
    resolver=deadline_resolver,
    bus=event_bus,
)

_HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.POLICY_BLOCKED: 400,
    ErrorKind.ILLEGAL_TRANSITION: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


def _current_time(now: datetime | None) -> datetime:
    """Simulated clock when *now* is given, else the wall clock in TIMEZONE."""
    zone = ZoneInfo(settings.TIMEZONE)
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _unwrap(outcome: Outcome):
    if outcome.ok:
        return outcome.value
    raise HTTPException(status_code=_HTTP_STATUS[outcome.error.kind], detail=outcome.error.reason)


def _storage_unavailable(exc: StorageError) -> HTTPException:
    logger.error("Storage failure: %s", exc)
    return HTTPException(status_code=500, detail=GENERIC_FAILURE_REASON)


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/commitments", response_model=list[CommitmentView])
def list_commitments(
    now: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> list[CommitmentView]:
    """Return the caller's commitments, latest deadline first."""
    owner_id = _require_user(x_user_id)
    current = _current_time(now)
    try:
        return [CommitmentView.at(c, current) for c in lifecycle.list_for_owner(owner_id)]
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@app.post("/commitments", response_model=CommitmentView)
def create_commitment(
    payload: CreateCommitmentRequest,
    now: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> CommitmentView:
    """Create a pending commitment from who/what/when free text."""
    owner_id = _require_user(x_user_id)
    current = _current_time(now)
    outcome = lifecycle.create(owner_id, payload.who, payload.what, payload.when, current)
    return CommitmentView.at(_unwrap(outcome), current)


@app.get("/commitments/{commitment_id}", response_model=CommitmentView)
def get_commitment(
    commitment_id: str,
    now: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> CommitmentView:
    owner_id = _require_user(x_user_id)
    return CommitmentView.at(_unwrap(lifecycle.get(owner_id, commitment_id)), _current_time(now))


@app.patch("/commitments/{commitment_id}", response_model=CommitmentView)
def update_commitment(
    commitment_id: str,
    payload: UpdateCommitmentRequest,
    now: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> CommitmentView:
    """Complete, reschedule or snooze a pending commitment."""
    owner_id = _require_user(x_user_id)
    current = _current_time(now)
    outcome = lifecycle.apply_update(owner_id, commitment_id, payload, current)
    return CommitmentView.at(_unwrap(outcome), current)


@app.get("/trust", response_model=TrustReport)
def trust_report(
    now: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> TrustReport:
    """Days since last chased, this week's stats, and who is owed the most."""
    owner_id = _require_user(x_user_id)
    try:
        return build_trust_report(
            trust_event_repo,
            commitment_repo.list_by_owner(owner_id),
            owner_id,
            _current_time(now),
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@app.post("/trust", response_model=TrustEvent)
def log_trust_event(
    payload: LogTrustEventRequest,
    now: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> TrustEvent:
    """Record an externally observed event, typically ``chased``."""
    owner_id = _require_user(x_user_id)
    try:
        return log_event(trust_event_repo, owner_id, payload, _current_time(now))
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@app.get("/trust/events", response_model=list[TrustEvent])
def list_trust_events(
    event_type: TrustEventType | None = None,
    commitment_id: str | None = None,
    since: datetime | None = None,
    x_user_id: str | None = Header(default=None),
) -> list[TrustEvent]:
    owner_id = _require_user(x_user_id)
    event_filter = TrustEventFilter(
        owner_id=owner_id,
        event_type=event_type,
        commitment_id=commitment_id,
        since=_current_time(since) if since is not None else None,
    )
    try:
        return trust_event_repo.query(event_filter)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@app.post("/deadline/preview", response_model=DeadlinePreview)
def preview_deadline(payload: DeadlinePreviewRequest, now: datetime | None = None) -> DeadlinePreview:
    """Show how free text would resolve, and which stage resolved it."""
    return deadline_resolver.preview(payload.input, _current_time(now))
