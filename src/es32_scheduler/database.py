"""SQLite-backed storage engine for the pending-schedule draft.

Drafts live in ``~/.es32_scheduler/drafts.db`` unless ``ES32_DRAFT_DB_URL``
names another SQLAlchemy URL. The special value ``memory`` keeps drafts in
the process only.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, Field
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

MEMORY_URL = "memory"
DEFAULT_DRAFT_PATH = Path("~/.es32_scheduler/drafts.db")


def default_draft_url() -> str:
    return f"sqlite:///{DEFAULT_DRAFT_PATH.expanduser()}"


class DraftStoreSettings(BaseModel):
    """Where the draft is kept."""

    url: str = Field(default_factory=default_draft_url)
    echo: bool = False

    @property
    def in_memory(self) -> bool:
        return self.url == MEMORY_URL

    @classmethod
    def load(cls) -> DraftStoreSettings:
        url = os.getenv("ES32_DRAFT_DB_URL", "").strip()
        return cls(
            url=url or default_draft_url(),
            echo=os.getenv("ES32_DRAFT_DB_ECHO", "false").lower()
            in {"1", "true", "yes", "on"},
        )


@lru_cache
def get_database_settings() -> DraftStoreSettings:
    """Return cached draft store settings."""
    return DraftStoreSettings.load()


_engine_lock = Lock()
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _ensure_sqlite_directory(url: str) -> None:
    if url.startswith("sqlite:///"):
        db_path = Path(url.replace("sqlite:///", "", 1)).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)


def create_draft_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``url`` and make sure the draft table exists."""
    from .db_models import Base  # Local import to avoid circular deps

    _ensure_sqlite_directory(url)
    engine = create_engine(url, echo=echo, future=True)
    Base.metadata.create_all(engine)
    return engine


def get_engine() -> Engine | None:
    """Return the draft engine, or None when drafts are kept in memory."""
    global _engine

    settings = get_database_settings()
    if settings.in_memory:
        return None

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = create_draft_engine(settings.url, echo=settings.echo)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Return a session factory bound to the draft engine."""
    global _session_factory
    engine = get_engine()
    if engine is None:
        raise RuntimeError(
            "Draft storage is in memory (ES32_DRAFT_DB_URL=memory); "
            "no database session is available."
        )

    if _session_factory is None:
        with _engine_lock:
            if _session_factory is None:
                _session_factory = sessionmaker(
                    bind=engine,
                    autoflush=False,
                    future=True,
                )
    return _session_factory
