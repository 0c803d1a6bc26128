"""Event descriptor types.

An event file holds one JSON object describing when to run the agent:

    {"type": "immediate", "text": "..."}
    {"type": "one-shot", "text": "...", "at": "2026-03-01T09:00:00Z"}
    {"type": "periodic", "text": "...", "schedule": "0 9 * * *", "timezone": "America/New_York"}

Any of them may carry an optional ``"session"`` naming the conversation the
run belongs to.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Literal, assert_never

# Event files larger than this are rejected without being parsed.
MAX_EVENT_FILE_BYTES = 1_048_576

EventType = Literal["immediate", "one-shot", "periodic"]


class EventParseError(ValueError):
    """Raised when event file content is not a valid event descriptor."""


@dataclass(frozen=True)
class ImmediateEvent:
    """Run as soon as the file is seen."""

    text: str
    session: str | None = None

    type: ClassVar[EventType] = "immediate"


@dataclass(frozen=True)
class OneShotEvent:
    """Run once at ``at`` (an ISO 8601 timestamp)."""

    text: str
    at: str
    session: str | None = None

    type: ClassVar[EventType] = "one-shot"


@dataclass(frozen=True)
class PeriodicEvent:
    """Run on a cron ``schedule`` evaluated in ``timezone``."""

    text: str
    schedule: str
    timezone: str
    session: str | None = None

    type: ClassVar[EventType] = "periodic"


ResponseEvent = ImmediateEvent | OneShotEvent | PeriodicEvent


def parse_event(
    content: str | bytes,
    filename: str,
    max_bytes: int = MAX_EVENT_FILE_BYTES,
) -> ResponseEvent:
    """Validate raw file content and return a typed event.

    Raises:
        EventParseError: If the content is oversized, not JSON, not an object,
            or is missing fields required by its ``type``.
    """
    size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
    if size > max_bytes:
        raise EventParseError(
            f"Event file {filename} is too large ({size} bytes, max {max_bytes})"
        )

    try:
        raw = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EventParseError(f"Invalid JSON in event file {filename}: {e}") from e

    if not isinstance(raw, dict):
        raise EventParseError(f"Invalid event data in {filename}")

    data: dict[str, Any] = raw
    event_type = data.get("type")
    text = data.get("text")
    if not event_type or not isinstance(text, str):
        raise EventParseError(f"Missing required fields (type, text) in {filename}")

    session = data.get("session") if isinstance(data.get("session"), str) else None

    if event_type == "immediate":
        return ImmediateEvent(text=text, session=session)

    if event_type == "one-shot":
        at = data.get("at")
        if not isinstance(at, str):
            raise EventParseError(f"Missing 'at' for one-shot event in {filename}")
        return OneShotEvent(text=text, at=at, session=session)

    if event_type == "periodic":
        schedule = data.get("schedule")
        timezone = data.get("timezone")
        if not isinstance(schedule, str):
            raise EventParseError(f"Missing 'schedule' for periodic event in {filename}")
        if not isinstance(timezone, str):
            raise EventParseError(f"Missing 'timezone' for periodic event in {filename}")
        return PeriodicEvent(
            text=text, schedule=schedule, timezone=timezone, session=session
        )

    raise EventParseError(f'Unknown event type "{event_type}" in {filename}')


def parse_trigger_time(value: str) -> float | None:
    """Convert a one-shot ``at`` value to a POSIX timestamp.

    Timestamps without an offset are read as local time. Returns None when
    the value cannot be parsed to a finite instant.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
        timestamp = parsed.timestamp()
    except (ValueError, OverflowError, OSError):
        return None
    return timestamp if math.isfinite(timestamp) else None


def describe_schedule(event: ResponseEvent) -> str:
    """The scheduling detail embedded in the agent message tag."""
    match event:
        case ImmediateEvent():
            return "immediate"
        case OneShotEvent(at=at):
            return at
        case PeriodicEvent(schedule=schedule):
            return schedule
        case _:
            assert_never(event)


def event_to_dict(event: ResponseEvent) -> dict[str, Any]:
    """Serialize an event back to its file representation."""
    data: dict[str, Any] = {"type": event.type, "text": event.text}
    match event:
        case ImmediateEvent():
            pass
        case OneShotEvent(at=at):
            data["at"] = at
        case PeriodicEvent(schedule=schedule, timezone=timezone):
            data["schedule"] = schedule
            data["timezone"] = timezone
        case _:
            assert_never(event)
    if event.session is not None:
        data["session"] = event.session
    return data
