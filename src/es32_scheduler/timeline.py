"""Projection of a schedule onto a 24-hour occupancy timeline."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime

from .schemas import Schedule
from .timeutils import (
    MINUTES_PER_DAY,
    canonical_to_local,
    current_utc_offset_minutes,
    minutes_since_midnight,
    parse_hhmm,
)
from .utils import logger

SECONDS_PER_DAY = 86400
MIN_EVENT_WIDTH_PERCENT = 0.5
MAX_EVENT_WIDTH_PERCENT = 5.0


def _percent(minutes: float) -> float:
    return minutes / MINUTES_PER_DAY * 100


@dataclass(frozen=True)
class BackgroundSegment:
    start_minute: int
    end_minute: int
    lights_on: bool

    @property
    def minutes(self) -> int:
        return self.end_minute - self.start_minute

    @property
    def left_percent(self) -> float:
        return _percent(self.start_minute)

    @property
    def width_percent(self) -> float:
        return _percent(self.minutes)


@dataclass(frozen=True)
class EventBlock:
    event_id: str
    time: str
    start_minute: int
    duration: int
    left_percent: float
    width_percent: float


@dataclass(frozen=True)
class TimelineProjection:
    background_segments: list[BackgroundSegment]
    event_blocks: list[EventBlock]

    @property
    def covered_minutes(self) -> int:
        return sum(segment.minutes for segment in self.background_segments)


def background_segments(lights_on_time: str, lights_off_time: str) -> list[BackgroundSegment]:
    """Split the day into lights-on and lights-off segments.

    A window with ``on < off`` lies within the day; anything else (including
    ``on == off``) wraps past midnight. Empty segments are omitted, so the
    result always covers exactly ``[0, 1440)``.
    """
    on = parse_hhmm(lights_on_time)
    off = parse_hhmm(lights_off_time)
    if on < off:
        bounds = [(0, on, False), (on, off, True), (off, MINUTES_PER_DAY, False)]
    else:
        bounds = [(0, off, True), (off, on, False), (on, MINUTES_PER_DAY, True)]
    return [
        BackgroundSegment(start_minute=start, end_minute=end, lights_on=lit)
        for start, end, lit in bounds
        if end > start
    ]


def event_width_percent(duration: int) -> float:
    """Visible width for an event; clamped for display only."""
    width = duration / SECONDS_PER_DAY * 100
    return max(MIN_EVENT_WIDTH_PERCENT, min(MAX_EVENT_WIDTH_PERCENT, width))


def project(
    schedule: Schedule,
    *,
    to_local: bool = False,
    offset_minutes: int | None = None,
) -> TimelineProjection:
    """Project ``schedule`` onto the day axis.

    Times are stored in GMT; pass ``to_local=True`` to lay the axis out in the
    viewer's wall-clock time instead.
    """
    if to_local and offset_minutes is None:
        offset_minutes = current_utc_offset_minutes()

    def _axis(time_str: str) -> str:
        if to_local:
            return canonical_to_local(time_str, offset_minutes)
        return time_str

    segments = background_segments(
        _axis(schedule.lights_on_time), _axis(schedule.lights_off_time)
    )

    blocks = []
    for event in schedule.events:
        display_time = _axis(event.time)
        start = parse_hhmm(display_time)
        blocks.append(
            EventBlock(
                event_id=event.id,
                time=display_time,
                start_minute=start,
                duration=event.duration,
                left_percent=_percent(start),
                width_percent=event_width_percent(event.duration),
            )
        )
    blocks.sort(key=lambda block: block.start_minute)
    return TimelineProjection(background_segments=segments, event_blocks=blocks)


def hour_ticks(step: int = 2) -> list[tuple[str, float]]:
    """Axis labels as ``(label, left_percent)`` pairs."""
    return [(f"{hour}:00", hour / 24 * 100) for hour in range(0, 24, step)]


def current_time_percent(now: datetime | None = None) -> float:
    """Position of the current-time marker on the local axis."""
    return _percent(minutes_since_midnight(now))


@dataclass
class CurrentTimeTicker:
    """Recomputes the current-time marker on a fixed interval."""

    on_tick: Callable[[float], None]
    interval_seconds: int = 60
    clock: Callable[[], datetime] = datetime.now
    position: float | None = field(default=None, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False)
    _running: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if not 1 <= self.interval_seconds <= 60:
            raise ValueError("interval_seconds must be between 1 and 60.")

    def tick(self) -> float:
        self.position = current_time_percent(self.clock())
        self.on_tick(self.position)
        return self.position

    async def start(self) -> None:
        if self._task:
            return
        self._running = True
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        logger.debug("Current-time ticker started.")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.debug("Current-time ticker stopped.")

    async def _run(self) -> None:
        while self._running:
            try:
                self.tick()
            except Exception as exc:  # pragma: no cover - callback failure
                logger.exception("Current-time tick failed.", error=str(exc))
            await asyncio.sleep(self.interval_seconds)


__all__ = [
    "BackgroundSegment",
    "CurrentTimeTicker",
    "EventBlock",
    "TimelineProjection",
    "background_segments",
    "current_time_percent",
    "event_width_percent",
    "hour_ticks",
    "project",
]
