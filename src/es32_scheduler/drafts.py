"""Durable storage for the pending schedule of an open create/edit session."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from threading import Lock
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .database import get_database_settings, get_session_factory
from .db_models import DraftModel
from .schemas import DraftRecord
from .utils import logger

DEFAULT_SLOT = "pendingSchedule"


class DraftRepository(Protocol):
    """Storage abstraction for the single in-progress draft."""

    def save(self, draft: DraftRecord) -> None:
        ...

    def load(self) -> DraftRecord | None:
        ...

    def clear(self) -> None:
        ...


class InMemoryDraftRepository(DraftRepository):
    """Keeps the draft as serialized JSON so callers never share references."""

    def __init__(self) -> None:
        self._payload: str | None = None
        self._lock = Lock()

    def save(self, draft: DraftRecord) -> None:
        with self._lock:
            self._payload = draft.model_dump_json(by_alias=True)

    def load(self) -> DraftRecord | None:
        with self._lock:
            payload = self._payload
        if payload is None:
            return None
        return DraftRecord.model_validate_json(payload)

    def clear(self) -> None:
        with self._lock:
            self._payload = None


class SQLDraftRepository(DraftRepository):
    """SQLAlchemy-backed draft repository that survives process restarts."""

    def __init__(
        self, session_factory: sessionmaker[Session], *, slot: str = DEFAULT_SLOT
    ) -> None:
        self._session_factory = session_factory
        self._slot = slot

    def save(self, draft: DraftRecord) -> None:
        schedule_json = draft.pending_schedule.model_dump_json(by_alias=True)
        now = datetime.now(timezone.utc).isoformat()
        with self._session_factory() as session:
            model = session.scalars(
                select(DraftModel).where(DraftModel.slot == self._slot)
            ).one_or_none()
            if model is None:
                model = DraftModel(slot=self._slot, mode="", schedule_json="", updated_at="")
                session.add(model)
            model.mode = draft.mode
            model.schedule_index = draft.schedule_index
            model.schedule_json = schedule_json
            model.updated_at = now
            session.commit()

    def load(self) -> DraftRecord | None:
        with self._session_factory() as session:
            model = session.scalars(
                select(DraftModel).where(DraftModel.slot == self._slot)
            ).one_or_none()
            if model is None:
                return None
            mode, index, schedule_json = model.mode, model.schedule_index, model.schedule_json
        return DraftRecord.model_validate(
            {
                "mode": mode,
                "scheduleIndex": index,
                "pendingSchedule": _parse_schedule(schedule_json),
            }
        )

    def clear(self) -> None:
        with self._session_factory() as session:
            session.execute(delete(DraftModel).where(DraftModel.slot == self._slot))
            session.commit()


def _parse_schedule(schedule_json: str) -> object:
    try:
        return json.loads(schedule_json)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Stored draft is not valid JSON: {exc}") from exc


_DEFAULT_DRAFT_REPOSITORY = InMemoryDraftRepository()
_SQL_DRAFT_REPOSITORY: SQLDraftRepository | None = None


def _get_sql_draft_repository() -> SQLDraftRepository:
    global _SQL_DRAFT_REPOSITORY
    if _SQL_DRAFT_REPOSITORY is None:
        session_factory = get_session_factory()
        _SQL_DRAFT_REPOSITORY = SQLDraftRepository(session_factory)
    return _SQL_DRAFT_REPOSITORY


def get_draft_repository() -> DraftRepository:
    """Return the configured draft repository.

    Falls back to process memory when the draft database cannot be opened.
    """
    if get_database_settings().in_memory:
        return _DEFAULT_DRAFT_REPOSITORY
    try:
        return _get_sql_draft_repository()
    except (OSError, SQLAlchemyError) as exc:
        logger.warning("Draft database unavailable, keeping drafts in memory: {}", exc)
        return _DEFAULT_DRAFT_REPOSITORY


__all__ = [
    "DraftRepository",
    "InMemoryDraftRepository",
    "SQLDraftRepository",
    "get_draft_repository",
]
