"""Event log models and their JSON payload codec."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator


CURRENT_VERSION = 1

_EXCESS_FRACTION_RE = re.compile(r"(\.[0-9]{6})[0-9]+")


class EventKind(str, Enum):
    START = "start"
    STOP = "stop"
    BREAK_START = "break_start"
    BREAK_STOP = "break_stop"


@dataclass(frozen=True, slots=True)
class Event:
    """One recorded action.

    Events carry no ordering of their own; ``EventLog.sorted_events`` orders by
    timestamp, then insertion order. ``action`` names the user command when one
    command wrote several events, so they can be undone together.
    """

    kind: EventKind
    timestamp: datetime
    action: str | None = None


@dataclass(slots=True)
class EventLog:
    """Events in the order the actions were taken (not necessarily timestamp order)."""

    events: list[Event] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    def append(self, event: Event) -> None:
        self.events.append(event)

    def pop(self) -> Event:
        return self.events.pop()

    def last(self) -> Event | None:
        return self.events[-1] if self.events else None

    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]

    def sorted_events(self) -> list[Event]:
        # stable: equal timestamps keep insertion order
        return sorted(self.events, key=lambda event: event.timestamp)


def load_iso(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # datetime only keeps microseconds
    text = _EXCESS_FRACTION_RE.sub(r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def event_to_dict(event: Event) -> dict[str, str]:
    out = {"kind": event.kind.value, "timestamp": event.timestamp.isoformat()}
    if event.action is not None:
        out["action"] = event.action
    return out


def event_from_dict(raw: Any) -> Event:
    if not isinstance(raw, dict):
        raise ValueError(f"event must be an object, got {type(raw).__name__}")
    kind_raw = raw.get("kind")
    try:
        kind = EventKind(kind_raw)
    except ValueError:
        raise ValueError(f"unknown event kind: {kind_raw!r}") from None
    timestamp_raw = raw.get("timestamp")
    if not isinstance(timestamp_raw, str):
        raise ValueError("event timestamp must be an ISO-8601 string")
    try:
        timestamp = load_iso(timestamp_raw)
    except ValueError:
        raise ValueError(f"invalid event timestamp: {timestamp_raw!r}") from None
    action = raw.get("action")
    if action is not None and not isinstance(action, str):
        raise ValueError("event action must be a string")
    return Event(kind=kind, timestamp=timestamp, action=action)


def log_to_payload(log: EventLog) -> dict[str, Any]:
    return {"version": CURRENT_VERSION, "events": [event_to_dict(event) for event in log]}


def log_from_payload(payload: Any) -> EventLog:
    """Decode a current-layout payload; raises ValueError on any shape problem."""
    if not isinstance(payload, dict):
        raise ValueError("top-level storage value must be an object")
    if "version" not in payload:
        raise ValueError("missing version tag (legacy layout?), run 'stempel migrate'")
    version = payload["version"]
    if isinstance(version, bool) or version != CURRENT_VERSION:
        raise ValueError(f"unsupported storage version: {version!r}")
    events = payload.get("events")
    if not isinstance(events, list):
        raise ValueError("'events' must be a list")
    out = EventLog()
    for index, raw in enumerate(events):
        try:
            out.append(event_from_dict(raw))
        except ValueError as exc:
            raise ValueError(f"event #{index}: {exc}") from None
    return out
