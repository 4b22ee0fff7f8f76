"""Public package interface for the ES32A08 irrigation scheduler client."""

from __future__ import annotations

from .cli import main as _cli_main
from .config import Settings, settings
from .conflicts import RelayConflict, find_relay_conflicts
from .drafts import (
    DraftRepository,
    InMemoryDraftRepository,
    SQLDraftRepository,
    get_draft_repository,
)
from .gateway import GatewayError, SchedulerGateway
from .notifier import (
    DraftNotifier,
    NullDraftNotifier,
    WebSocketDraftNotifier,
    get_draft_notifier,
)
from .schedules import (
    MAX_EVENTS,
    MAX_SCHEDULES,
    CapacityError,
    ScheduleValidationError,
    SchedulerMode,
    SchedulerState,
    add_event,
    create_schedule,
    delete_event,
)
from .schemas import DraftRecord, Event, Schedule, SchedulerDocument, SchedulerStatus
from .session import CommitResult, EditSession, SessionError, open_session
from .timeline import CurrentTimeTicker, TimelineProjection, project
from .timeutils import canonical_to_local, local_to_canonical

__all__ = [
    "MAX_EVENTS",
    "MAX_SCHEDULES",
    "CapacityError",
    "CommitResult",
    "CurrentTimeTicker",
    "DraftNotifier",
    "DraftRecord",
    "DraftRepository",
    "EditSession",
    "Event",
    "GatewayError",
    "InMemoryDraftRepository",
    "NullDraftNotifier",
    "RelayConflict",
    "SQLDraftRepository",
    "Schedule",
    "ScheduleValidationError",
    "SchedulerDocument",
    "SchedulerGateway",
    "SchedulerMode",
    "SchedulerState",
    "SchedulerStatus",
    "SessionError",
    "Settings",
    "TimelineProjection",
    "WebSocketDraftNotifier",
    "add_event",
    "canonical_to_local",
    "create_schedule",
    "delete_event",
    "find_relay_conflicts",
    "get_draft_notifier",
    "get_draft_repository",
    "local_to_canonical",
    "main",
    "open_session",
    "project",
    "settings",
]


def main(argv: None | list[str] = None) -> None:
    """Entrypoint for the command-line interface."""
    _cli_main(argv)
