"""Tests for the command-line interface."""

from __future__ import annotations

import json

import pytest

from es32_scheduler import cli
from es32_scheduler import main as package_main
from es32_scheduler.drafts import InMemoryDraftRepository
from es32_scheduler.gateway import GatewayError
from es32_scheduler.schedules import SchedulerState
from es32_scheduler.schemas import (
    DraftRecord,
    Event,
    GatewayResponse,
    Schedule,
    SchedulerDocument,
    SchedulerStatus,
)
from es32_scheduler.session import EditSession


class StubGateway:
    document = SchedulerDocument()
    fail = False

    def __init__(self) -> None:
        self.saved: list[SchedulerDocument] = []
        self.calls: list[str] = []
        self.closed = False

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise GatewayError("Device request failed (503): busy")

    def load(self) -> SchedulerDocument:
        self._check("load")
        return self.document.model_copy(deep=True)

    def save(self, document: SchedulerDocument) -> GatewayResponse:
        self._check("save")
        self.saved.append(document)
        return GatewayResponse(status="success")

    def status(self) -> SchedulerStatus:
        self._check("status")
        return SchedulerStatus(is_active=True, schedule_count=len(self.document.schedules))

    def activate(self) -> GatewayResponse:
        self._check("activate")
        return GatewayResponse(status="success", message="Scheduler activated")

    def deactivate(self) -> GatewayResponse:
        self._check("deactivate")
        return GatewayResponse(status="success", message="Scheduler deactivated")

    def manual_watering(self, relay: int, duration: int) -> GatewayResponse:
        self._check(f"water:{relay}:{duration}")
        if not 0 <= relay <= 7 or duration <= 0:
            raise ValueError("Invalid relay or duration")
        return GatewayResponse(status="success")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def gateway(monkeypatch) -> StubGateway:
    stub = StubGateway()
    stub.document = SchedulerDocument(
        schedules=[
            Schedule(
                name="Veg",
                relay_mask=0b0011,
                lights_on_time="20:00",
                lights_off_time="06:00",
                events=[Event(id="1_0", time="21:00", duration=90)],
            ),
            Schedule(name="Bloom", relay_mask=0b0110),
        ]
    )
    monkeypatch.setattr(cli, "_create_gateway", lambda: stub)
    return stub


@pytest.fixture
def draft_repository(monkeypatch) -> InMemoryDraftRepository:
    repository = InMemoryDraftRepository()
    monkeypatch.setattr(
        cli,
        "open_session",
        lambda backend: EditSession(SchedulerState(), backend, drafts=repository),
    )
    return repository


def test_list_schedules(gateway):
    lines: list[str] = []

    cli.list_schedules(print_fn=lines.append)

    payload = json.loads(lines[0])
    assert payload["total"] == 2
    assert payload["schedules"][0] == {
        "name": "Veg",
        "relays": [1, 2],
        "lightsOn": "20:00",
        "lightsOff": "06:00",
        "eventCount": 1,
    }
    assert gateway.closed is True


def test_list_schedules_empty(gateway):
    gateway.document = SchedulerDocument()
    lines: list[str] = []

    cli.list_schedules(print_fn=lines.append)

    assert lines == ["No schedules available."]


def test_show_schedule_lays_out_timeline(gateway):
    lines: list[str] = []

    cli.show_schedule("Veg", print_fn=lines.append)

    payload = json.loads(lines[0])
    assert payload["events"] == [
        {"time": "21:00", "duration": "1m 30s", "left": 87.5, "width": 0.5}
    ]
    assert [segment["lightsOn"] for segment in payload["background"]] == [True, False, True]


def test_show_unknown_schedule_exits(gateway):
    with pytest.raises(SystemExit, match="No schedule named 'Missing'"):
        cli.show_schedule("Missing", print_fn=lambda _: None)


def test_list_conflicts(gateway):
    lines: list[str] = []

    cli.list_conflicts(print_fn=lines.append)

    payload = json.loads(lines[0])
    assert payload == {"total": 1, "conflicts": [{"relay": 2, "schedules": ["Veg", "Bloom"]}]}


def test_no_conflicts_message(gateway):
    gateway.document.schedules[1].relay_mask = 0b1000
    lines: list[str] = []

    cli.list_conflicts(print_fn=lines.append)

    assert lines == ["No relay conflicts found."]


def test_gateway_error_exits_and_closes(gateway):
    gateway.fail = True

    with pytest.raises(SystemExit, match="Device API error"):
        cli.show_status(print_fn=lambda _: None)
    assert gateway.closed is True


def test_delete_schedule_saves_remaining(gateway, draft_repository):
    lines: list[str] = []

    cli.delete_schedule("Veg", print_fn=lines.append)

    assert json.loads(lines[0]) == {"deleted": "Veg", "remaining": 1}
    assert [s.name for s in gateway.saved[0].schedules] == ["Bloom"]


def test_show_draft_and_discard(gateway, draft_repository):
    lines: list[str] = []
    cli.show_draft(print_fn=lines.append)
    assert lines == ["No pending schedule."]

    draft_repository.save(
        DraftRecord(mode="creating", pending_schedule=Schedule(name="Clones", relay_mask=16))
    )
    lines.clear()
    cli.show_draft(discard=True, print_fn=lines.append)

    payload = json.loads(lines[0])
    assert payload["mode"] == "creating"
    assert payload["discarded"] is True
    assert payload["pendingSchedule"]["relays"] == [5]
    assert draft_repository.load() is None


def test_main_dispatches_commands(gateway, capsys):
    package_main(["status"])
    assert json.loads(capsys.readouterr().out)["isActive"] is True

    cli.main(["activate"])
    assert json.loads(capsys.readouterr().out)["message"] == "Scheduler activated"

    cli.main(["water", "--relay", "8", "--duration", "15"])
    assert gateway.calls[-1] == "water:7:15"
    capsys.readouterr()

    with pytest.raises(SystemExit, match="Invalid relay"):
        cli.main(["water", "--relay", "9", "--duration", "15"])


def test_main_requires_a_command(capsys):
    with pytest.raises(SystemExit):
        cli.main([])
