"""Detection of relays claimed by more than one schedule."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .schedules import RELAY_COUNT
from .schemas import Schedule


@dataclass(frozen=True)
class RelayConflict:
    """A relay (1-based) claimed by a later schedule after an earlier one."""

    relay: int
    schedule_names: tuple[str, str]


def find_relay_conflicts(schedules: Iterable[Schedule]) -> list[RelayConflict]:
    """Report every relay that appears in more than one schedule's mask.

    The first schedule to claim a relay owns it; each later claimant produces
    one record naming the owner and itself.
    """
    owners: list[str | None] = [None] * RELAY_COUNT
    conflicts: list[RelayConflict] = []
    for schedule in schedules:
        for relay in range(RELAY_COUNT):
            if not schedule.relay_mask & (1 << relay):
                continue
            owner = owners[relay]
            if owner is None:
                owners[relay] = schedule.name
            else:
                conflicts.append(
                    RelayConflict(relay=relay + 1, schedule_names=(owner, schedule.name))
                )
    return conflicts


def format_conflict_warning(conflicts: Iterable[RelayConflict]) -> str:
    conflicts = list(conflicts)
    if not conflicts:
        return ""
    lines = ["Warning: Some relays are assigned to multiple schedules:"]
    for conflict in conflicts:
        first, second = conflict.schedule_names
        lines.append(f'- Relay {conflict.relay} is used by both "{first}" and "{second}"')
    return "\n".join(lines)


__all__ = ["RelayConflict", "find_relay_conflicts", "format_conflict_warning"]
