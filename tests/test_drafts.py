"""Tests for the pending-schedule draft repositories."""

from __future__ import annotations

import pytest
from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from es32_scheduler import database
from es32_scheduler import drafts as drafts_module
from es32_scheduler.database import create_draft_engine
from es32_scheduler.db_models import DraftModel
from es32_scheduler.drafts import InMemoryDraftRepository, SQLDraftRepository
from es32_scheduler.schemas import (
    DraftRecord,
    Event,
    GatewayResponse,
    Schedule,
    SchedulerDocument,
)
from es32_scheduler.session import open_session


class StubBackend:
    def load(self) -> SchedulerDocument:
        return SchedulerDocument()

    def save(self, document: SchedulerDocument) -> GatewayResponse:
        return GatewayResponse(status="success")


def _record(**overrides) -> DraftRecord:
    schedule = Schedule(
        name="Seedlings",
        relay_mask=3,
        lights_on_time="05:00",
        lights_off_time="23:00",
        events=[Event(id="1700000000000_0", time="05:15", duration=45, executed_mask=0)],
    )
    values = {"mode": "editing", "pending_schedule": schedule, "schedule_index": 2}
    values.update(overrides)
    return DraftRecord(**values)


@pytest.fixture
def sql_repository(tmp_path) -> SQLDraftRepository:
    engine = create_draft_engine(f"sqlite:///{tmp_path / 'nested' / 'drafts.db'}")
    factory = sessionmaker(bind=engine, autoflush=False, future=True)
    return SQLDraftRepository(factory)


def test_in_memory_round_trip_returns_independent_copies():
    repository = InMemoryDraftRepository()
    assert repository.load() is None

    record = _record()
    repository.save(record)
    record.pending_schedule.name = "Mutated after save"

    loaded = repository.load()
    assert loaded is not None
    assert loaded.pending_schedule.name == "Seedlings"
    assert loaded.schedule_index == 2

    loaded.pending_schedule.events.clear()
    assert repository.load().pending_schedule.event_count == 1

    repository.clear()
    assert repository.load() is None


def test_sql_repository_persists_and_overwrites(sql_repository):
    assert sql_repository.load() is None

    sql_repository.save(_record())
    sql_repository.save(_record(mode="creating", schedule_index=None))

    loaded = sql_repository.load()
    assert loaded is not None
    assert loaded.mode == "creating"
    assert loaded.schedule_index is None
    assert loaded.pending_schedule.relay_mask == 3
    assert loaded.pending_schedule.events[0].time == "05:15"

    sql_repository.clear()
    assert sql_repository.load() is None


def test_sql_repository_slots_are_independent(sql_repository):
    other = SQLDraftRepository(sql_repository._session_factory, slot="secondary")

    sql_repository.save(_record())

    assert other.load() is None
    other.save(_record(schedule_index=0))
    sql_repository.clear()
    assert other.load().schedule_index == 0


def test_sql_repository_rejects_corrupt_json(sql_repository):
    sql_repository.save(_record())
    with sql_repository._session_factory() as session:
        session.execute(update(DraftModel).values(schedule_json="{not json"))
        session.commit()

    with pytest.raises(ValueError):
        sql_repository.load()


def _reset_draft_store(monkeypatch: pytest.MonkeyPatch) -> None:
    """Forget cached engines, as a freshly started process would."""
    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_session_factory", None)
    monkeypatch.setattr(drafts_module, "_SQL_DRAFT_REPOSITORY", None)
    database.get_database_settings.cache_clear()


def test_memory_url_keeps_drafts_in_process():
    assert database.get_database_settings().in_memory is True
    assert isinstance(drafts_module.get_draft_repository(), InMemoryDraftRepository)


def test_default_store_is_sqlite_under_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("ES32_DRAFT_DB_URL")
    _reset_draft_store(monkeypatch)

    repository = drafts_module.get_draft_repository()
    assert isinstance(repository, SQLDraftRepository)
    repository.save(_record())

    db_file = tmp_path / ".es32_scheduler" / "drafts.db"
    assert db_file.exists()

    fresh_engine = create_draft_engine(f"sqlite:///{db_file}")
    fresh = SQLDraftRepository(sessionmaker(bind=fresh_engine, future=True))
    loaded = fresh.load()
    assert loaded is not None
    assert loaded.pending_schedule.name == "Seedlings"
    fresh_engine.dispose()


def test_draft_survives_restart_and_is_offered_for_resume(tmp_path, monkeypatch):
    monkeypatch.setenv("ES32_DRAFT_DB_URL", f"sqlite:///{tmp_path / 'drafts.db'}")
    backend = StubBackend()

    _reset_draft_store(monkeypatch)
    first = open_session(backend)
    first.start_create("Overnight")
    first.add_event("06:00", 30)

    _reset_draft_store(monkeypatch)
    second = open_session(backend)
    second.load()
    record = second.check_pending_draft()

    assert record is not None
    assert record.mode == "creating"
    assert record.pending_schedule.name == "Overnight"
    assert record.pending_schedule.event_count == 1


def test_unusable_database_falls_back_to_memory(tmp_path, monkeypatch):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("ES32_DRAFT_DB_URL", f"sqlite:///{blocker / 'drafts.db'}")
    _reset_draft_store(monkeypatch)

    assert isinstance(drafts_module.get_draft_repository(), InMemoryDraftRepository)
