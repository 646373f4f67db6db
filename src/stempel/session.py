"""Work-period state machine.

The session state is never stored: it is replayed from the event log every time,
so the log stays the single source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from stempel.errors import StateError
from stempel.storage.models import Event, EventKind, EventLog


class SessionState(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    ON_BREAK = "on_break"


BREAK_DURATION = "break-duration"

_ACTION_NAMES = {
    EventKind.START: "start",
    EventKind.STOP: "stop",
    EventKind.BREAK_START: "break-start",
    EventKind.BREAK_STOP: "break-stop",
}

# kind -> (required state, resulting state)
_TRANSITIONS = {
    EventKind.START: (SessionState.IDLE, SessionState.WORKING),
    EventKind.BREAK_START: (SessionState.WORKING, SessionState.ON_BREAK),
    EventKind.BREAK_STOP: (SessionState.ON_BREAK, SessionState.WORKING),
    EventKind.STOP: (SessionState.WORKING, SessionState.IDLE),
}

_REFUSALS = {
    (EventKind.START, SessionState.WORKING): "already started",
    (EventKind.START, SessionState.ON_BREAK): "already started (currently on a break)",
    (EventKind.STOP, SessionState.IDLE): "no start found",
    (EventKind.STOP, SessionState.ON_BREAK): "on a break, stop the break before stopping work",
    (EventKind.BREAK_START, SessionState.IDLE): "not working, start before taking a break",
    (EventKind.BREAK_START, SessionState.ON_BREAK): "already on a break",
    (EventKind.BREAK_STOP, SessionState.IDLE): "not on a break (no start found)",
    (EventKind.BREAK_STOP, SessionState.WORKING): "not on a break",
}


@dataclass(slots=True)
class SessionStatus:
    state: SessionState
    started_at: datetime | None = None
    on_break_since: datetime | None = None
    worked: timedelta = timedelta(0)
    breaks: timedelta = timedelta(0)


def _step(state: SessionState, kind: EventKind) -> SessionState:
    required, result = _TRANSITIONS[kind]
    if state is not required:
        raise StateError(_ACTION_NAMES[kind], state.value, _REFUSALS[(kind, state)])
    return result


def derive_state(log: EventLog) -> SessionState:
    """Replay ``log`` from empty; raises StateError if it breaks an invariant."""
    state = SessionState.IDLE
    for index, event in enumerate(log):
        try:
            state = _step(state, event.kind)
        except StateError as exc:
            raise StateError(exc.action, exc.state, f"event #{index}: {exc.message}") from None
    return state


def _record(log: EventLog, kind: EventKind, at: datetime) -> SessionState:
    state = _step(derive_state(log), kind)
    log.append(Event(kind=kind, timestamp=at))
    return state


def start(log: EventLog, at: datetime) -> SessionState:
    return _record(log, EventKind.START, at)


def stop(log: EventLog, at: datetime) -> SessionState:
    return _record(log, EventKind.STOP, at)


def start_break(log: EventLog, at: datetime) -> SessionState:
    return _record(log, EventKind.BREAK_START, at)


def stop_break(log: EventLog, at: datetime) -> SessionState:
    return _record(log, EventKind.BREAK_STOP, at)


def add_break(log: EventLog, at: datetime, duration: timedelta) -> SessionState:
    """Record an already finished break of ``duration`` ending at ``at``."""
    state = derive_state(log)
    if state is not SessionState.WORKING:
        raise StateError(BREAK_DURATION, state.value, _REFUSALS[(EventKind.BREAK_START, state)])
    if duration < timedelta(0):
        raise StateError(BREAK_DURATION, state.value, "break duration cannot be negative")
    log.append(Event(kind=EventKind.BREAK_START, timestamp=at - duration, action=BREAK_DURATION))
    log.append(Event(kind=EventKind.BREAK_STOP, timestamp=at, action=BREAK_DURATION))
    return SessionState.WORKING


def cancel(log: EventLog) -> Event | None:
    """Undo the most recent action of an open session; ``None`` when idle.

    A recorded finished break is undone as a whole; the returned event is its
    ``BreakStop``.
    """
    if derive_state(log) is SessionState.IDLE:
        return None
    removed = log.pop()
    previous = log.last()
    if (
        removed.action == BREAK_DURATION
        and previous is not None
        and previous.kind is EventKind.BREAK_START
        and previous.action == BREAK_DURATION
    ):
        log.pop()
    return removed


def describe(log: EventLog, now: datetime) -> SessionStatus:
    state = derive_state(log)
    if state is SessionState.IDLE:
        return SessionStatus(state=state)

    open_index = max(i for i, event in enumerate(log.events) if event.kind is EventKind.START)
    started_at = log.events[open_index].timestamp
    breaks = timedelta(0)
    break_start: datetime | None = None
    for event in log.events[open_index + 1 :]:
        if event.kind is EventKind.BREAK_START:
            break_start = event.timestamp
        elif event.kind is EventKind.BREAK_STOP and break_start is not None:
            breaks += max(timedelta(0), event.timestamp - break_start)
            break_start = None
    if break_start is not None:
        breaks += max(timedelta(0), now - break_start)

    worked = max(timedelta(0), now - started_at - breaks)
    return SessionStatus(
        state=state,
        started_at=started_at,
        on_break_since=break_start,
        worked=worked,
        breaks=breaks,
    )
