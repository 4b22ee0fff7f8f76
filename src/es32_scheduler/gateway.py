"""HTTP client for the device's scheduler endpoints."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import requests  # type: ignore[import-untyped]
from pydantic import ValidationError
from requests import Response, Session

from .schemas import (
    Event,
    GatewayResponse,
    ManualWateringRequest,
    Schedule,
    SchedulerDocument,
    SchedulerStatus,
)
from .utils import logger, preview_payload


class GatewayError(RuntimeError):
    """Raised when a request to the device API fails."""


def _describe(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"]) or "value"
    return f"{location}: {error['msg']}"


def parse_document(data: Mapping[str, Any]) -> SchedulerDocument:
    """Validate a device document entry by entry.

    Events and schedules that fail validation are skipped with a warning
    naming them, so one bad entry does not hide the rest of the document.
    """
    raw_schedules = data.get("schedules") or []
    if not isinstance(raw_schedules, list):
        raise GatewayError(
            "Device returned an invalid scheduler document: schedules is not a list."
        )

    schedules: list[Schedule] = []
    for position, raw_schedule in enumerate(raw_schedules):
        if not isinstance(raw_schedule, Mapping):
            logger.bind(position=position).warning("Skipping malformed schedule entry")
            continue
        raw = dict(raw_schedule)
        name = raw.get("name", f"#{position}")

        raw_events = raw.get("events") or []
        if not isinstance(raw_events, list):
            logger.bind(schedule=name).warning("Ignoring malformed event list of {!r}", name)
            raw_events = []

        events: list[Event] = []
        for index, raw_event in enumerate(raw_events):
            try:
                events.append(Event.model_validate(raw_event))
            except ValidationError as exc:
                logger.bind(schedule=name, event=index).warning(
                    "Skipping invalid event {} of schedule {!r}: {}", index, name, _describe(exc)
                )
        raw["events"] = events

        try:
            schedules.append(Schedule.model_validate(raw))
        except ValidationError as exc:
            logger.bind(schedule=name, position=position).warning(
                "Skipping invalid schedule {!r}: {}", name, _describe(exc)
            )

    try:
        return SchedulerDocument.model_validate(
            {"currentScheduleIndex": data.get("currentScheduleIndex"), "schedules": schedules}
        )
    except ValidationError as exc:
        raise GatewayError(f"Device returned an invalid scheduler document: {exc}") from exc


class SchedulerGateway:
    """Load, save and control the scheduler stored on the device."""

    def __init__(self, base_url: str, *, timeout: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Session | None = None

    def establish_connection(self) -> Session:
        """Initialize (or reuse) a requests.Session for the device API."""
        if self._session is not None:
            return self._session

        session = requests.Session()
        session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        self._session = session
        return session

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
    ) -> Response:
        """Execute an HTTP request against the device API."""
        session = self.establish_connection()
        url = f"{self.base_url}/{path.lstrip('/')}"

        try:
            response = session.request(
                method=method.upper(),
                url=url,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayError(f"Device request failed ({method.upper()} {url}): {exc}") from exc

        if not response.ok:
            raise GatewayError(
                f"Device request failed ({response.status_code}): {response.text}"
            )

        return response

    def _json(self, response: Response) -> Mapping[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayError(f"Device returned invalid JSON: {exc}") from exc
        if not isinstance(data, Mapping):
            raise GatewayError("Device returned an unexpected payload.")
        return data

    def load(self) -> SchedulerDocument:
        """Fetch the full scheduler document."""
        data = self._json(self.request("get", "/api/scheduler/load"))
        document = parse_document(data)
        logger.bind(schedule_count=document.schedule_count).debug("Scheduler state loaded")
        return document

    def save(self, document: SchedulerDocument) -> GatewayResponse:
        """Replace the scheduler document on the device."""
        payload = document.model_dump(mode="json", by_alias=True)
        logger.bind(schedule_count=document.schedule_count).debug(
            "Sending scheduler state: {}", preview_payload(payload)
        )
        response = self.request("post", "/api/scheduler/save", json=payload)
        return GatewayResponse.model_validate(self._json(response))

    def activate(self) -> GatewayResponse:
        return GatewayResponse.model_validate(
            self._json(self.request("post", "/api/scheduler/activate"))
        )

    def deactivate(self) -> GatewayResponse:
        return GatewayResponse.model_validate(
            self._json(self.request("post", "/api/scheduler/deactivate"))
        )

    def status(self) -> SchedulerStatus:
        data = self._json(self.request("get", "/api/scheduler/status"))
        return SchedulerStatus.model_validate(data)

    def manual_watering(self, relay: int, duration: int) -> GatewayResponse:
        """Run one relay (0-based) for ``duration`` seconds outside any schedule."""
        try:
            body = ManualWateringRequest(relay=relay, duration=duration)
        except ValidationError as exc:
            raise ValueError(f"Invalid relay or duration: {exc}") from exc
        response = self.request("post", "/api/relay/manual", json=body.model_dump())
        return GatewayResponse.model_validate(self._json(response))

    def close(self) -> None:
        """Close the underlying session if it was created."""
        if self._session is not None:
            self._session.close()
            self._session = None


__all__ = ["GatewayError", "SchedulerGateway", "parse_document"]
