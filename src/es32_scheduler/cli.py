"""Command-line helpers for inspecting and controlling the device scheduler."""

from __future__ import annotations

import argparse
import json
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from .config import settings
from .conflicts import find_relay_conflicts
from .gateway import GatewayError, SchedulerGateway
from .schedules import SchedulerState, format_duration, relays_from_mask
from .schemas import Schedule
from .session import EditSession, open_session
from .timeline import project
from .utils import configure_logging, logger

configure_logging()

T = TypeVar("T")


def _create_gateway() -> SchedulerGateway:
    return SchedulerGateway(settings.device_base_url, timeout=settings.request_timeout)


def _dump_json(data: object, *, print_fn=print) -> None:
    formatted = json.dumps(data, indent=2, sort_keys=True, default=str)
    print_fn(formatted)


def _summarize(schedule: Schedule) -> dict[str, Any]:
    return {
        "name": schedule.name,
        "relays": relays_from_mask(schedule.relay_mask),
        "lightsOn": schedule.lights_on_time,
        "lightsOff": schedule.lights_off_time,
        "eventCount": schedule.event_count,
    }


def _with_gateway(action: str, operation: Callable[[SchedulerGateway], T]) -> T:
    gateway = _create_gateway()
    try:
        return operation(gateway)
    except GatewayError as exc:
        logger.exception("Device API error during {}", action)
        raise SystemExit(f"Device API error: {exc}") from exc
    finally:
        gateway.close()


def _load_state(gateway: SchedulerGateway) -> SchedulerState:
    state = SchedulerState()
    state.hydrate(gateway.load())
    return state


def list_schedules(*, print_fn=print) -> None:
    """List every schedule stored on the device."""
    state = _with_gateway("list", _load_state)
    if not state.schedules:
        print_fn("No schedules available.")
        return
    _dump_json(
        {
            "total": state.schedule_count,
            "schedules": [_summarize(schedule) for schedule in state.schedules],
        },
        print_fn=print_fn,
    )


def show_schedule(name: str, *, local: bool = False, print_fn=print) -> None:
    """Print one schedule's events and timeline layout."""
    state = _with_gateway("show", _load_state)
    schedule = next((s for s in state.schedules if s.name == name), None)
    if schedule is None:
        raise SystemExit(f"No schedule named {name!r}.")

    projection = project(schedule, to_local=local)
    _dump_json(
        {
            **_summarize(schedule),
            "events": [
                {
                    "time": block.time,
                    "duration": format_duration(block.duration),
                    "left": round(block.left_percent, 3),
                    "width": round(block.width_percent, 3),
                }
                for block in projection.event_blocks
            ],
            "background": [
                {
                    "start": segment.start_minute,
                    "end": segment.end_minute,
                    "lightsOn": segment.lights_on,
                }
                for segment in projection.background_segments
            ],
        },
        print_fn=print_fn,
    )


def list_conflicts(*, print_fn=print) -> None:
    """Report relays assigned to more than one schedule."""
    state = _with_gateway("conflicts", _load_state)
    conflicts = find_relay_conflicts(state.schedules)
    if not conflicts:
        print_fn("No relay conflicts found.")
        return
    _dump_json(
        {
            "total": len(conflicts),
            "conflicts": [
                {"relay": c.relay, "schedules": list(c.schedule_names)} for c in conflicts
            ],
        },
        print_fn=print_fn,
    )


def _find_index(session: EditSession, name: str) -> int:
    for index, schedule in enumerate(session.state.schedules):
        if schedule.name == name:
            return index
    raise SystemExit(f"No schedule named {name!r}.")


def delete_schedule(name: str, *, print_fn=print) -> None:
    """Delete one schedule by name and save the remaining list."""

    def _delete(gateway: SchedulerGateway) -> int:
        with open_session(gateway) as session:
            session.load()
            session.delete_schedule(_find_index(session, name))
            return session.state.schedule_count

    remaining = _with_gateway("delete", _delete)
    _dump_json({"deleted": name, "remaining": remaining}, print_fn=print_fn)


def show_draft(*, discard: bool = False, print_fn=print) -> None:
    """Print the stored pending schedule, optionally discarding it."""
    with open_session(_create_gateway()) as session:
        record = session.check_pending_draft()
        if record is not None and discard:
            session.discard_draft()
    if record is None:
        print_fn("No pending schedule.")
        return
    if discard:
        logger.bind(name=record.pending_schedule.name).info("Pending schedule discarded")
    _dump_json(
        {
            "mode": record.mode,
            "scheduleIndex": record.schedule_index,
            "discarded": discard,
            "pendingSchedule": _summarize(record.pending_schedule),
        },
        print_fn=print_fn,
    )


def show_status(*, print_fn=print) -> None:
    status = _with_gateway("status", lambda gateway: gateway.status())
    _dump_json(status.model_dump(mode="json", by_alias=True), print_fn=print_fn)


def set_active(active: bool, *, print_fn=print) -> None:
    action = "activate" if active else "deactivate"
    response = _with_gateway(
        action,
        lambda gateway: gateway.activate() if active else gateway.deactivate(),
    )
    logger.bind(action=action).info("Scheduler {}d", action)
    _dump_json(response.model_dump(mode="json", by_alias=True), print_fn=print_fn)


def manual_watering(relay: int, duration: int, *, print_fn=print) -> None:
    """Run one relay (1-based) for ``duration`` seconds."""
    try:
        response = _with_gateway(
            "manual watering",
            lambda gateway: gateway.manual_watering(relay - 1, duration),
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    _dump_json(response.model_dump(mode="json", by_alias=True), print_fn=print_fn)


def main(argv: Iterable[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Inspect and control the irrigation scheduler on an ES32A08 controller."
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("list", help="List schedules stored on the device.")
    show = commands.add_parser("show", help="Show one schedule and its timeline.")
    show.add_argument("name", help="Schedule name (exact match).")
    show.add_argument(
        "--local",
        action="store_true",
        help="Lay out the timeline in local time instead of GMT.",
    )
    delete = commands.add_parser("delete", help="Delete a schedule and save the rest.")
    delete.add_argument("name", help="Schedule name (exact match).")
    draft = commands.add_parser("draft", help="Show the stored pending schedule.")
    draft.add_argument(
        "--discard", action="store_true", help="Discard the pending schedule."
    )
    commands.add_parser("conflicts", help="List relays claimed by several schedules.")
    commands.add_parser("status", help="Show whether the scheduler is running.")
    commands.add_parser("activate", help="Start executing schedules on the device.")
    commands.add_parser("deactivate", help="Stop executing schedules on the device.")
    water = commands.add_parser("water", help="Run one relay manually.")
    water.add_argument("--relay", type=int, required=True, help="Relay number (1-8).")
    water.add_argument(
        "--duration", type=int, required=True, help="Run time in seconds."
    )

    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.command == "list":
        list_schedules(print_fn=print)
    elif args.command == "show":
        show_schedule(args.name, local=args.local, print_fn=print)
    elif args.command == "delete":
        delete_schedule(args.name, print_fn=print)
    elif args.command == "draft":
        show_draft(discard=args.discard, print_fn=print)
    elif args.command == "conflicts":
        list_conflicts(print_fn=print)
    elif args.command == "status":
        show_status(print_fn=print)
    elif args.command in {"activate", "deactivate"}:
        set_active(args.command == "activate", print_fn=print)
    elif args.command == "water":
        manual_watering(args.relay, args.duration, print_fn=print)


__all__ = [
    "delete_schedule",
    "list_conflicts",
    "list_schedules",
    "main",
    "manual_watering",
    "set_active",
    "show_draft",
    "show_schedule",
    "show_status",
]
