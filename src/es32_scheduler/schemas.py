"""Pydantic models for the scheduler document exchanged with the device."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .timeutils import is_valid_time


def _to_camel(string: str) -> str:
    first, *rest = string.split("_")
    return first + "".join(word.capitalize() for word in rest)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


class Event(CamelModel):
    """A single relay activation within a schedule."""

    id: str
    time: str
    duration: int = Field(..., gt=0)
    executed_mask: int | None = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not is_valid_time(value):
            raise ValueError(f"invalid HH:MM time {value!r}")
        return value


class Schedule(CamelModel):
    """A named light window plus watering events for a set of relays."""

    name: str
    metadata: str = ""
    relay_mask: int = Field(default=0, ge=0, le=0xFF)
    lights_on_time: str = "06:00"
    lights_off_time: str = "18:00"
    events: list[Event] = Field(default_factory=list)

    @field_validator("lights_on_time", "lights_off_time")
    @classmethod
    def _check_window(cls, value: str) -> str:
        if not is_valid_time(value):
            raise ValueError(f"invalid HH:MM time {value!r}")
        return value

    @computed_field(alias="eventCount")  # type: ignore[prop-decorator]
    @property
    def event_count(self) -> int:
        return len(self.events)


class SchedulerDocument(CamelModel):
    """Full scheduler document as served by ``/api/scheduler/load``."""

    current_schedule_index: int = 0
    schedules: list[Schedule] = Field(default_factory=list)

    @field_validator("current_schedule_index", mode="before")
    @classmethod
    def _default_index(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("schedules", mode="before")
    @classmethod
    def _default_schedules(cls, value: Any) -> Any:
        return [] if value is None else value

    @computed_field(alias="scheduleCount")  # type: ignore[prop-decorator]
    @property
    def schedule_count(self) -> int:
        return len(self.schedules)


class SchedulerStatus(CamelModel):
    model_config = ConfigDict(
        alias_generator=_to_camel, populate_by_name=True, extra="allow"
    )

    is_active: bool = False
    schedule_count: int | None = None
    light_condition: str | None = None
    next_event: Any | None = None


class GatewayResponse(CamelModel):
    model_config = ConfigDict(
        alias_generator=_to_camel, populate_by_name=True, extra="allow"
    )

    status: str | None = None
    message: str | None = None


class ManualWateringRequest(CamelModel):
    relay: int = Field(..., ge=0, le=7)
    duration: int = Field(..., gt=0)


class DraftRecord(CamelModel):
    """Durable copy of an in-progress create/edit session."""

    mode: Literal["creating", "editing"]
    pending_schedule: Schedule
    schedule_index: int | None = None


__all__ = [
    "CamelModel",
    "DraftRecord",
    "Event",
    "GatewayResponse",
    "ManualWateringRequest",
    "Schedule",
    "SchedulerDocument",
    "SchedulerStatus",
]
