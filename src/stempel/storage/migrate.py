"""One-shot migration of legacy storage layouts into the versioned event layout.

Two untagged layouts written by earlier releases are understood:

* ``legacy-worksets``: ``{"name": ..., "work_sets": [{"ty", "duration", "start"}]}``
* ``legacy-balance``: ``{"start", "breaking", "breaks", "account", "config"?}``

Anything carrying a ``version`` tag other than the current one, or untagged
content matching neither legacy shape, is rejected instead of guessed at.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from stempel.errors import MigrationError, StateError, StorageIoError, StorageNotFoundError
from stempel.session import derive_state

from .models import CURRENT_VERSION, Event, EventKind, EventLog, load_iso, log_from_payload
from .store import EventStore

logger = logging.getLogger(__name__)

LAYOUT_CURRENT = "current"
LAYOUT_WORKSETS = "legacy-worksets"
LAYOUT_BALANCE = "legacy-balance"


@dataclass(slots=True)
class MigrationResult:
    layout: str
    log: EventLog
    migrated: bool
    legacy_config: dict[str, Any] | None = None
    backup_path: str | None = None


def detect_layout(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise MigrationError("storage content is not a JSON object")
    if "version" in payload:
        version = payload["version"]
        if not isinstance(version, bool) and version == CURRENT_VERSION:
            return LAYOUT_CURRENT
        raise MigrationError(f"unknown storage version {version!r}, refusing to guess", version=version)
    if isinstance(payload.get("work_sets"), list) and "name" in payload:
        return LAYOUT_WORKSETS
    if isinstance(payload.get("account"), dict) and isinstance(payload.get("breaks"), list) and "start" in payload:
        return LAYOUT_BALANCE
    raise MigrationError(
        "unrecognised storage layout: no version tag and no legacy keys",
        keys=sorted(str(key) for key in payload.keys()),
    )


def _legacy_time(raw: Any, where: str) -> datetime:
    if not isinstance(raw, str):
        raise MigrationError(f"{where}: timestamp must be a string")
    try:
        return load_iso(raw)
    except ValueError:
        raise MigrationError(f"{where}: invalid timestamp {raw!r}") from None


def _legacy_duration(raw: Any, where: str) -> timedelta:
    if not isinstance(raw, dict) or not isinstance(raw.get("secs"), int):
        raise MigrationError(f"{where}: duration must look like {{'secs': int, 'nanos': int}}")
    nanos = raw.get("nanos", 0)
    if not isinstance(nanos, int):
        raise MigrationError(f"{where}: duration nanos must be an integer")
    return timedelta(seconds=raw["secs"], microseconds=nanos // 1000)


def _open_session(start: datetime, breaks: list[tuple[datetime, datetime]], breaking: datetime | None) -> list[Event]:
    events = [Event(EventKind.START, start)]
    for break_start, break_stop in sorted(breaks):
        events.append(Event(EventKind.BREAK_START, break_start))
        events.append(Event(EventKind.BREAK_STOP, break_stop))
    if breaking is not None:
        events.append(Event(EventKind.BREAK_START, breaking))
    return events


def _from_worksets(payload: dict[str, Any]) -> EventLog:
    completed: list[tuple[datetime, datetime]] = []
    open_start: datetime | None = None
    open_break: datetime | None = None
    finished_breaks: list[tuple[datetime, datetime]] = []
    for index, item in enumerate(payload["work_sets"]):
        where = f"work_sets[{index}]"
        if not isinstance(item, dict):
            raise MigrationError(f"{where}: entry must be an object")
        kind = item.get("ty")
        stamp = _legacy_time(item.get("start"), where)
        duration = _legacy_duration(item.get("duration"), where)
        if kind == "Work":
            completed.append((stamp, stamp + duration))
        elif kind == "Start":
            open_start = stamp
        elif kind == "Break":
            # finished breaks were stamped when they ended
            if duration:
                finished_breaks.append((stamp - duration, stamp))
            else:
                open_break = stamp
        else:
            raise MigrationError(f"{where}: unknown entry type {kind!r}")

    log = EventLog()
    for start, stop in sorted(completed):
        log.append(Event(EventKind.START, start))
        log.append(Event(EventKind.STOP, stop))
    if open_start is not None:
        for event in _open_session(open_start, finished_breaks, open_break):
            log.append(event)
    elif finished_breaks or open_break is not None:
        logger.warning("migrate: dropping break entries without an open start")
    return log


def _from_balance(payload: dict[str, Any]) -> EventLog:
    completed: list[tuple[datetime, datetime]] = []
    for stop_raw, duration_raw in payload["account"].items():
        where = f"account[{stop_raw}]"
        stop = _legacy_time(stop_raw, where)
        completed.append((stop - _legacy_duration(duration_raw, where), stop))

    log = EventLog()
    for start, stop in sorted(completed):
        log.append(Event(EventKind.START, start))
        log.append(Event(EventKind.STOP, stop))

    start_raw = payload.get("start")
    breaking_raw = payload.get("breaking")
    breaks: list[tuple[datetime, datetime]] = []
    for index, item in enumerate(payload["breaks"]):
        where = f"breaks[{index}]"
        if not isinstance(item, list) or len(item) != 2:
            raise MigrationError(f"{where}: break must be a [start, duration] pair")
        break_start = _legacy_time(item[0], where)
        breaks.append((break_start, break_start + _legacy_duration(item[1], where)))

    if start_raw is not None:
        breaking = _legacy_time(breaking_raw, "breaking") if breaking_raw is not None else None
        for event in _open_session(_legacy_time(start_raw, "start"), breaks, breaking):
            log.append(event)
    elif breaks or breaking_raw is not None:
        logger.warning("migrate: dropping break entries without an open start")
    return log


def _legacy_config(payload: dict[str, Any]) -> dict[str, Any] | None:
    raw = payload.get("config")
    if not isinstance(raw, dict):
        return None
    out: dict[str, Any] = {}
    if isinstance(raw.get("month_stats"), int):
        out["window_months"] = raw["month_stats"]
    if isinstance(raw.get("daily_hours"), (int, float)) and not isinstance(raw.get("daily_hours"), bool):
        out["daily_hours"] = raw["daily_hours"]
    return out or None


def migrate_payload(payload: Any) -> MigrationResult:
    """Convert parsed storage content to the current layout; idempotent for current input."""
    layout = detect_layout(payload)
    if layout == LAYOUT_CURRENT:
        try:
            log = log_from_payload(payload)
        except ValueError as exc:
            raise MigrationError(f"current layout but invalid content: {exc}") from exc
        return MigrationResult(layout=layout, log=log, migrated=False)

    if layout == LAYOUT_WORKSETS:
        log = _from_worksets(payload)
        legacy_config = None
    else:
        log = _from_balance(payload)
        legacy_config = _legacy_config(payload)
    try:
        derive_state(log)
    except StateError as exc:
        raise MigrationError(f"migrated events are inconsistent: {exc.message}") from exc
    return MigrationResult(layout=layout, log=log, migrated=True, legacy_config=legacy_config)


def migrate_file(path: str | Path) -> MigrationResult:
    """Rewrite ``path`` in the current layout, keeping the original as ``<path>.bak``."""
    target = Path(path)
    try:
        raw_text = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise StorageNotFoundError(str(target)) from None
    except UnicodeDecodeError as exc:
        raise MigrationError(f"storage file is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise StorageIoError(str(target), exc, operation="read") from exc
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise MigrationError(f"storage file is not valid JSON: {exc}") from exc

    result = migrate_payload(payload)
    if not result.migrated:
        logger.info("migrate: %s already uses the current layout", target)
        return result

    backup = target.with_name(f"{target.name}.bak")
    try:
        backup.write_text(raw_text, encoding="utf-8")
    except OSError as exc:
        raise StorageIoError(str(backup), exc) from exc
    EventStore(target).save(result.log)
    result.backup_path = str(backup)
    logger.info("migrate: converted %s from %s (%s events), backup at %s", target, result.layout, len(result.log), backup)
    return result
