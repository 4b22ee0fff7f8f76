"""In-memory scheduler state and the operations that mutate schedules and events."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .schemas import Event, Schedule, SchedulerDocument
from .timeutils import MINUTES_PER_DAY, format_minutes, is_valid_time, parse_hhmm
from .utils import logger

MAX_SCHEDULES = 8
MAX_EVENTS = 50
RELAY_COUNT = 8

DEFAULT_LIGHTS_ON = "06:00"
DEFAULT_LIGHTS_OFF = "18:00"


class ScheduleValidationError(ValueError):
    """Raised when user-supplied schedule or event values are invalid."""


class CapacityError(RuntimeError):
    """Raised when a schedule or event ceiling would be exceeded."""


class SchedulerMode(str, Enum):
    VIEW_ONLY = "view-only"
    CREATING = "creating"
    EDITING = "editing"


# Helpers ---------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def relays_from_mask(mask: int) -> list[int]:
    """Return the 1-based relay numbers set in ``mask``."""
    return [relay + 1 for relay in range(RELAY_COUNT) if mask & (1 << relay)]


def mask_from_relays(relays: Iterable[int]) -> int:
    """Build a relay mask from 1-based relay numbers."""
    mask = 0
    for relay in relays:
        if not 1 <= relay <= RELAY_COUNT:
            raise ScheduleValidationError(
                f"Relay {relay} is out of range (1-{RELAY_COUNT})."
            )
        mask |= 1 << (relay - 1)
    return mask


def format_duration(seconds: int) -> str:
    """Render a duration the way the event list shows it ("45s", "2m 5s")."""
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"


def active_schedules(schedules: Iterable[Schedule]) -> list[Schedule]:
    """Schedules that control at least one relay."""
    return [schedule for schedule in schedules if schedule.relay_mask != 0]


def _require_time(value: str, label: str) -> str:
    if not is_valid_time(value):
        raise ScheduleValidationError(f"{label} must be HH:MM (00:00-23:59), got {value!r}.")
    return value


def validate_schedule_name(
    name: str,
    schedules: Sequence[Schedule],
    *,
    exclude_index: int | None = None,
) -> str:
    """Ensure ``name`` is non-empty and unique among ``schedules``."""
    if not name or not name.strip():
        raise ScheduleValidationError("Schedule name must not be empty.")
    for index, schedule in enumerate(schedules):
        if index == exclude_index:
            continue
        if schedule.name == name:
            raise ScheduleValidationError(f"A schedule named {name!r} already exists.")
    return name


# Schedule operations ---------------------------------------------------------


def create_schedule(name: str | None = None, *, now: datetime | None = None) -> Schedule:
    """Build a new, empty schedule without attaching it to any state."""
    created = now or _now()
    if name is None:
        name = f"Schedule {created.astimezone():%Y-%m-%d %H:%M:%S}"
    return Schedule(
        name=name,
        metadata=created.isoformat(),
        relay_mask=0,
        lights_on_time=DEFAULT_LIGHTS_ON,
        lights_off_time=DEFAULT_LIGHTS_OFF,
        events=[],
    )


def update_schedule(
    schedule: Schedule,
    *,
    name: str | None = None,
    relay_mask: int | None = None,
    lights_on_time: str | None = None,
    lights_off_time: str | None = None,
) -> Schedule:
    """Apply field edits after validating all of them."""
    if relay_mask is not None and not 0 <= relay_mask <= 0xFF:
        raise ScheduleValidationError(f"Relay mask must be 0-255, got {relay_mask}.")
    if lights_on_time is not None:
        _require_time(lights_on_time, "Lights-on time")
    if lights_off_time is not None:
        _require_time(lights_off_time, "Lights-off time")

    if name is not None:
        schedule.name = name
    if relay_mask is not None:
        schedule.relay_mask = relay_mask
    if lights_on_time is not None:
        schedule.lights_on_time = lights_on_time
    if lights_off_time is not None:
        schedule.lights_off_time = lights_off_time
    return schedule


# Event operations ------------------------------------------------------------


def _event_token(schedule: Schedule, occurrences: int, now: datetime | None) -> int:
    """Return a millisecond token whose ``<token>_<i>`` ids are unused."""
    token = int((now or _now()).timestamp() * 1000)
    existing = {event.id for event in schedule.events}
    while any(f"{token}_{i}" in existing for i in range(occurrences)):
        token += 1
    return token


def add_event(
    schedule: Schedule,
    time: str,
    duration: int,
    repeat_count: int = 0,
    repeat_interval: int = 0,
    *,
    now: datetime | None = None,
) -> list[Event]:
    """Add an event plus ``repeat_count`` repeats spaced ``repeat_interval`` minutes apart.

    Occurrences that would start at or after midnight are dropped rather than
    wrapped. The capacity check counts every requested occurrence, including
    ones that are later dropped, and rejects the whole request when the
    schedule would exceed ``MAX_EVENTS``. Repeats become independent events
    with no link back to the group they were expanded from.
    """
    _require_time(time, "Event time")
    if duration <= 0:
        raise ScheduleValidationError("Duration must be greater than 0.")
    if repeat_count < 0:
        raise ScheduleValidationError("Repeat count must be 0 or greater.")
    if repeat_count > 0 and repeat_interval <= 0:
        raise ScheduleValidationError("Repeat interval must be greater than 0.")

    requested = repeat_count + 1
    if len(schedule.events) + requested > MAX_EVENTS:
        raise CapacityError(
            f"Cannot add {requested} events. Would exceed maximum of {MAX_EVENTS} events."
        )

    base = parse_hhmm(time)
    token = _event_token(schedule, requested, now)
    created: list[Event] = []
    for occurrence in range(requested):
        start = base + occurrence * repeat_interval
        if start >= MINUTES_PER_DAY:
            break
        created.append(
            Event(
                id=f"{token}_{occurrence}",
                time=format_minutes(start),
                duration=duration,
                executed_mask=0,
            )
        )

    schedule.events.extend(created)
    logger.bind(schedule=schedule.name, requested=requested, added=len(created)).debug(
        "Added {} event(s); schedule now has {}", len(created), schedule.event_count
    )
    return created


def delete_event(schedule: Schedule, index: int) -> Event:
    """Remove and return the event at ``index``."""
    if not 0 <= index < len(schedule.events):
        raise IndexError(f"Invalid event index: {index}")
    removed = schedule.events.pop(index)
    logger.bind(schedule=schedule.name, event_id=removed.id).debug(
        "Event deleted; schedule now has {}", schedule.event_count
    )
    return removed


def update_event(
    schedule: Schedule,
    index: int,
    *,
    time: str | None = None,
    duration: int | None = None,
) -> Event:
    """Change the start time and/or duration of one event in place."""
    if not 0 <= index < len(schedule.events):
        raise IndexError(f"Invalid event index: {index}")
    if time is not None:
        _require_time(time, "Event time")
    if duration is not None and duration <= 0:
        raise ScheduleValidationError("Duration must be greater than 0.")

    event = schedule.events[index]
    if time is not None:
        event.time = time
    if duration is not None:
        event.duration = duration
    return event


# State -----------------------------------------------------------------------


@dataclass
class SchedulerState:
    """Scheduler state for one client session."""

    schedules: list[Schedule] = field(default_factory=list)
    current_schedule_index: int = 0
    mode: SchedulerMode = SchedulerMode.VIEW_ONLY
    pending_schedule: Schedule | None = None

    @property
    def schedule_count(self) -> int:
        return len(self.schedules)

    @property
    def current_schedule(self) -> Schedule | None:
        if not self.schedules:
            return None
        if not 0 <= self.current_schedule_index < len(self.schedules):
            return None
        return self.schedules[self.current_schedule_index]

    def append_schedule(self, schedule: Schedule) -> int:
        """Append ``schedule`` and return its index."""
        if len(self.schedules) >= MAX_SCHEDULES:
            raise CapacityError(f"Maximum number of schedules ({MAX_SCHEDULES}) reached.")
        self.schedules.append(schedule)
        return len(self.schedules) - 1

    def remove_schedule(self, index: int) -> Schedule:
        """Remove a schedule and keep the selection pointing at the same entry."""
        if not 0 <= index < len(self.schedules):
            raise IndexError(f"Invalid schedule index: {index}")
        removed = self.schedules.pop(index)
        if index < self.current_schedule_index:
            self.current_schedule_index -= 1
        elif self.current_schedule_index >= len(self.schedules):
            self.current_schedule_index = max(0, len(self.schedules) - 1)
        return removed

    def hydrate(self, document: SchedulerDocument) -> None:
        """Replace the committed schedules with a freshly loaded document."""
        self.schedules = [schedule.model_copy(deep=True) for schedule in document.schedules]
        index = document.current_schedule_index
        if not 0 <= index < len(self.schedules):
            index = 0
        self.current_schedule_index = index

    def to_document(self, schedules: Sequence[Schedule] | None = None) -> SchedulerDocument:
        """Snapshot ``schedules`` (defaults to the committed list) as a wire document."""
        source = self.schedules if schedules is None else schedules
        return SchedulerDocument(
            current_schedule_index=self.current_schedule_index,
            schedules=[schedule.model_copy(deep=True) for schedule in source],
        )


__all__ = [
    "MAX_EVENTS",
    "MAX_SCHEDULES",
    "RELAY_COUNT",
    "CapacityError",
    "ScheduleValidationError",
    "SchedulerMode",
    "SchedulerState",
    "active_schedules",
    "add_event",
    "create_schedule",
    "delete_event",
    "format_duration",
    "mask_from_relays",
    "relays_from_mask",
    "update_event",
    "update_schedule",
    "validate_schedule_name",
]
