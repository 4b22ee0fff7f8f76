"""Edit-session state machine over the scheduler state.

A session is either viewing the committed schedules or holding one pending
schedule (a new one, or a deep copy of an existing one) that is edited in
isolation and written back on commit. Every edit to the pending schedule is
also written to a durable draft repository and announced on the live
channel, so an interrupted session can be resumed later.

Nothing prevents two clients from resuming the same draft; whichever commits
last overwrites the other's changes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from . import schedules as model
from .conflicts import RelayConflict, find_relay_conflicts, format_conflict_warning
from .drafts import DraftRepository, InMemoryDraftRepository, get_draft_repository
from .gateway import GatewayError
from .notifier import DraftNotifier, NullDraftNotifier, get_draft_notifier
from .schedules import (
    MAX_SCHEDULES,
    CapacityError,
    SchedulerMode,
    SchedulerState,
    mask_from_relays,
    validate_schedule_name,
)
from .schemas import DraftRecord, Event, GatewayResponse, Schedule, SchedulerDocument
from .utils import logger


class SessionError(RuntimeError):
    """Raised when an operation is not allowed in the current session mode."""


class SchedulerBackend(Protocol):
    """The part of the gateway the session depends on."""

    def load(self) -> SchedulerDocument:
        ...

    def save(self, document: SchedulerDocument) -> GatewayResponse:
        ...


@dataclass(frozen=True)
class CommitResult:
    schedule: Schedule
    index: int
    conflicts: list[RelayConflict]
    response: GatewayResponse


class EditSession:
    """Drives create/edit/view transitions for one :class:`SchedulerState`."""

    def __init__(
        self,
        state: SchedulerState,
        backend: SchedulerBackend,
        *,
        drafts: DraftRepository | None = None,
        notifier: DraftNotifier | None = None,
    ) -> None:
        self.state = state
        self._backend = backend
        self._drafts = drafts if drafts is not None else InMemoryDraftRepository()
        self._notifier = notifier if notifier is not None else NullDraftNotifier()
        self._saving = False

    # Introspection -----------------------------------------------------------

    @property
    def mode(self) -> SchedulerMode:
        return self.state.mode

    @property
    def is_open(self) -> bool:
        return self.state.mode is not SchedulerMode.VIEW_ONLY

    @property
    def saving(self) -> bool:
        return self._saving

    @property
    def pending(self) -> Schedule | None:
        return self.state.pending_schedule

    @property
    def notifier(self) -> DraftNotifier:
        return self._notifier

    def close(self) -> None:
        """Stop the live channel. Stored drafts are kept for a later resume."""
        self._notifier.stop()

    def __enter__(self) -> EditSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Loading and selection ---------------------------------------------------

    def load(self) -> SchedulerDocument:
        """Replace the committed schedules with the device's copy.

        A failed load leaves the current state untouched.
        """
        try:
            document = self._backend.load()
        except GatewayError:
            logger.exception("Error loading scheduler state")
            raise
        self.state.hydrate(document)
        logger.info("Loaded {} schedules", self.state.schedule_count)
        return document

    def select(self, index: int) -> bool:
        """Change the selected schedule; ignored while a session is open."""
        if self.is_open:
            logger.bind(mode=self.mode.value).debug("Selection locked while editing")
            return False
        if not 0 <= index < self.state.schedule_count:
            raise IndexError(f"Invalid schedule index: {index}")
        self.state.current_schedule_index = index
        return True

    # Transitions -------------------------------------------------------------

    def start_create(self, name: str | None = None) -> Schedule:
        self._require_view_only("create a schedule")
        if self.state.schedule_count >= MAX_SCHEDULES:
            raise CapacityError(f"Maximum number of schedules ({MAX_SCHEDULES}) reached.")

        self.state.pending_schedule = model.create_schedule(name)
        self.state.mode = SchedulerMode.CREATING
        logger.bind(name=self.state.pending_schedule.name).info("Started creating schedule")
        self._notifier.publish({"action": "startCreating"})
        self._store_draft()
        return self.state.pending_schedule

    def start_edit(self, index: int) -> Schedule:
        self._require_view_only("edit a schedule")
        if not 0 <= index < self.state.schedule_count:
            raise IndexError(f"Invalid schedule index: {index}")

        self.state.current_schedule_index = index
        self.state.pending_schedule = self.state.schedules[index].model_copy(deep=True)
        self.state.mode = SchedulerMode.EDITING
        name = self.state.pending_schedule.name
        logger.bind(index=index, name=name).info("Started editing schedule")
        self._notifier.publish({"action": "startEditing", "scheduleId": name})
        self._store_draft()
        return self.state.pending_schedule

    def commit(self) -> CommitResult:
        """Validate the pending schedule and save the whole state to the device.

        On any failure the session stays open and the committed schedules are
        unchanged, so the save can be retried.
        """
        pending = self._require_pending()
        if self._saving:
            raise SessionError("A save is already in progress.")

        editing = self.mode is SchedulerMode.EDITING
        exclude = self.state.current_schedule_index if editing else None
        validate_schedule_name(pending.name, self.state.schedules, exclude_index=exclude)

        staged = SchedulerState(
            schedules=[schedule.model_copy(deep=True) for schedule in self.state.schedules],
            current_schedule_index=self.state.current_schedule_index,
        )
        committed = pending.model_copy(deep=True)
        if editing:
            index = staged.current_schedule_index
            if not 0 <= index < staged.schedule_count:
                raise SessionError(f"Schedule being edited no longer exists (index {index}).")
            staged.schedules[index] = committed
        else:
            index = staged.append_schedule(committed)
        staged.current_schedule_index = index

        conflicts = find_relay_conflicts(staged.schedules)
        if conflicts:
            logger.warning(format_conflict_warning(conflicts))

        response = self._save(staged.to_document())

        self.state.schedules = staged.schedules
        self.state.current_schedule_index = index
        self._close()
        logger.bind(index=index, name=committed.name).info("Schedule saved")
        return CommitResult(
            schedule=committed, index=index, conflicts=conflicts, response=response
        )

    def cancel(self) -> None:
        """Discard the pending schedule without saving."""
        if not self.is_open:
            return
        logger.bind(mode=self.mode.value).info("Canceling edit/create mode")
        self._close()

    def delete_schedule(self, index: int) -> Schedule:
        """Remove a committed schedule and save immediately."""
        self._require_view_only("delete a schedule")
        if self._saving:
            raise SessionError("A save is already in progress.")

        staged = SchedulerState(
            schedules=[schedule.model_copy(deep=True) for schedule in self.state.schedules],
            current_schedule_index=self.state.current_schedule_index,
        )
        removed = staged.remove_schedule(index)
        self._save(staged.to_document())

        self.state.schedules = staged.schedules
        self.state.current_schedule_index = staged.current_schedule_index
        logger.bind(name=removed.name).info("Schedule deleted")
        return removed

    # Pending edits -----------------------------------------------------------

    def update_pending(
        self,
        *,
        name: str | None = None,
        relay_mask: int | None = None,
        relays: Iterable[int] | None = None,
        lights_on_time: str | None = None,
        lights_off_time: str | None = None,
    ) -> Schedule:
        pending = self._require_pending()
        if relays is not None:
            if relay_mask is not None:
                raise ValueError("Pass either relay_mask or relays, not both.")
            relay_mask = mask_from_relays(relays)
        model.update_schedule(
            pending,
            name=name,
            relay_mask=relay_mask,
            lights_on_time=lights_on_time,
            lights_off_time=lights_off_time,
        )
        self._store_draft()
        return pending

    def add_event(
        self,
        time: str,
        duration: int,
        repeat_count: int = 0,
        repeat_interval: int = 0,
    ) -> list[Event]:
        pending = self._require_pending()
        created = model.add_event(pending, time, duration, repeat_count, repeat_interval)
        self._store_draft()
        return created

    def delete_event(self, index: int) -> Event:
        pending = self._require_pending()
        removed = model.delete_event(pending, index)
        self._store_draft()
        return removed

    def update_event(
        self, index: int, *, time: str | None = None, duration: int | None = None
    ) -> Event:
        pending = self._require_pending()
        event = model.update_event(pending, index, time=time, duration=duration)
        self._store_draft()
        return event

    # Drafts ------------------------------------------------------------------

    def check_pending_draft(self) -> DraftRecord | None:
        """Return a stored draft left by an earlier session, if any.

        Unreadable drafts are discarded.
        """
        try:
            return self._drafts.load()
        except ValueError as exc:
            logger.warning("Discarding unreadable pending schedule: {}", exc)
            self._drafts.clear()
            return None

    def resume_draft(self, record: DraftRecord) -> Schedule:
        """Reopen the session described by ``record``.

        An editing draft is matched to its schedule by name first, then by the
        stored index. If neither matches, the draft is resumed as a new
        schedule.
        """
        self._require_view_only("resume a draft")
        pending = record.pending_schedule.model_copy(deep=True)
        mode = SchedulerMode(record.mode)

        if mode is SchedulerMode.EDITING:
            index = self._find_schedule(pending.name)
            if index is None and record.schedule_index is not None:
                if 0 <= record.schedule_index < self.state.schedule_count:
                    index = record.schedule_index
            if index is None:
                logger.bind(name=pending.name).warning(
                    "Edited schedule not found; resuming draft as a new schedule"
                )
                mode = SchedulerMode.CREATING
            else:
                self.state.current_schedule_index = index

        self.state.pending_schedule = pending
        self.state.mode = mode
        if mode is SchedulerMode.CREATING:
            self._notifier.publish({"action": "startCreating", "scheduleId": None})
        else:
            self._notifier.publish({"action": "startEditing", "scheduleId": pending.name})
        self._store_draft()
        logger.bind(mode=mode.value, name=pending.name).info("Resumed pending schedule")
        return pending

    def discard_draft(self) -> None:
        self._drafts.clear()
        if not self.is_open:
            self.state.pending_schedule = None

    # Live channel ------------------------------------------------------------

    def handle_live_message(self, message: Mapping[str, Any]) -> bool:
        """Apply one message from the live channel; return True if state changed."""
        kind = message.get("type")
        if kind == "pendingSchedule":
            data = message.get("data")
            if not message.get("isPending") or not data:
                return False
            if not self.is_open:
                logger.debug("Ignoring remote pending schedule while viewing")
                return False
            try:
                self.state.pending_schedule = Schedule.model_validate(data)
            except ValidationError as exc:
                logger.warning("Ignoring invalid remote pending schedule: {}", exc)
                return False
            self._store_draft(publish=False)
            logger.debug("Received pending schedule from server")
            return True

        if kind == "scheduleUpdate":
            if self.is_open:
                logger.debug("Deferring schedule update until the session closes")
                return False
            try:
                self.load()
            except GatewayError:
                return False
            return True

        logger.debug("Unknown live message type: {}", kind)
        return False

    def process_live_messages(self) -> int:
        """Apply every message received since the last call; return how many changed state."""
        changed = 0
        for message in self._notifier.poll_messages():
            if self.handle_live_message(message):
                changed += 1
        return changed

    # Internals ---------------------------------------------------------------

    def _require_view_only(self, action: str) -> None:
        if self.is_open:
            raise SessionError(f"Cannot {action} while in {self.mode.value} mode.")

    def _require_pending(self) -> Schedule:
        if not self.is_open or self.state.pending_schedule is None:
            raise SessionError("No schedule is being created or edited.")
        return self.state.pending_schedule

    def _find_schedule(self, name: str) -> int | None:
        for index, schedule in enumerate(self.state.schedules):
            if schedule.name == name:
                return index
        return None

    def _store_draft(self, *, publish: bool = True) -> None:
        pending = self.state.pending_schedule
        if not self.is_open or pending is None:
            return
        editing = self.mode is SchedulerMode.EDITING
        self._drafts.save(
            DraftRecord(
                mode=self.mode.value,
                pending_schedule=pending,
                schedule_index=self.state.current_schedule_index if editing else None,
            )
        )
        if not publish:
            return
        self._notifier.publish(
            {
                "action": "updatePending",
                "data": pending.model_dump(mode="json", by_alias=True),
            }
        )

    def _save(self, document: SchedulerDocument) -> GatewayResponse:
        self._saving = True
        try:
            return self._backend.save(document)
        except GatewayError:
            logger.exception("Error saving scheduler state")
            raise
        finally:
            self._saving = False

    def _close(self) -> None:
        self._drafts.clear()
        self.state.pending_schedule = None
        self.state.mode = SchedulerMode.VIEW_ONLY


def open_session(
    backend: SchedulerBackend, *, state: SchedulerState | None = None
) -> EditSession:
    """Build a session wired to the configured draft store and live channel.

    The live channel is started here; call :meth:`EditSession.close` (or use
    the session as a context manager) to stop it.
    """
    notifier = get_draft_notifier()
    notifier.start()
    return EditSession(
        state if state is not None else SchedulerState(),
        backend,
        drafts=get_draft_repository(),
        notifier=notifier,
    )


__all__ = [
    "CommitResult",
    "EditSession",
    "SchedulerBackend",
    "SessionError",
    "open_session",
]
