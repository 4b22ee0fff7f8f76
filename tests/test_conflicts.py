"""Tests for relay conflict detection."""

from __future__ import annotations

from es32_scheduler.conflicts import (
    RelayConflict,
    find_relay_conflicts,
    format_conflict_warning,
)
from es32_scheduler.schemas import Schedule


def _schedule(name: str, mask: int) -> Schedule:
    return Schedule(name=name, relay_mask=mask)


def test_shared_relay_reports_one_conflict():
    conflicts = find_relay_conflicts([_schedule("A", 0b00000001), _schedule("B", 0b00000001)])

    assert conflicts == [RelayConflict(relay=1, schedule_names=("A", "B"))]


def test_disjoint_masks_have_no_conflicts():
    assert find_relay_conflicts([_schedule("A", 0b0011), _schedule("B", 0b1100)]) == []
    assert find_relay_conflicts([]) == []


def test_first_claimant_is_named_for_every_later_claimant():
    conflicts = find_relay_conflicts(
        [_schedule("A", 0b1000_0000), _schedule("B", 0b1000_0010), _schedule("C", 0b1000_0010)]
    )

    assert conflicts == [
        RelayConflict(relay=8, schedule_names=("A", "B")),
        RelayConflict(relay=2, schedule_names=("B", "C")),
        RelayConflict(relay=8, schedule_names=("A", "C")),
    ]


def test_warning_text_lists_each_conflict():
    warning = format_conflict_warning([RelayConflict(relay=3, schedule_names=("Front", "Back"))])

    assert warning.splitlines() == [
        "Warning: Some relays are assigned to multiple schedules:",
        '- Relay 3 is used by both "Front" and "Back"',
    ]
    assert format_conflict_warning([]) == ""
