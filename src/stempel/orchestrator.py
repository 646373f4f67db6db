"""Application context and the user-facing tracker operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from stempel import session
from stempel.config import AppConfig, ConfigSnapshot, StatsSection, save_config
from stempel.session import SessionState, SessionStatus
from stempel.stats import StatsReport, build_report, work_intervals
from stempel.storage.migrate import MigrationResult, migrate_file
from stempel.storage.models import Event
from stempel.storage.store import EventStore
from stempel.timeparse import parse_duration, parse_month, resolve_timestamp

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now().astimezone()


@dataclass(slots=True)
class AppContext:
    config: AppConfig
    config_snapshot: ConfigSnapshot
    store: EventStore
    clock: Clock


@dataclass(slots=True)
class ActionResult:
    action: str
    at: datetime
    state: SessionState
    duration: timedelta | None = None


@dataclass(slots=True)
class CancelResult:
    removed: Event | None
    state: SessionState


def build_context(config: AppConfig, snapshot: ConfigSnapshot, clock: Clock | None = None) -> AppContext:
    return AppContext(
        config=config,
        config_snapshot=snapshot,
        store=EventStore(config.paths.storage),
        clock=clock or system_clock,
    )


def start_work(context: AppContext, offset: str | None = None, time: str | None = None) -> ActionResult:
    at = resolve_timestamp(context.clock(), offset=offset, time=time)
    log = context.store.load_or_empty()
    state = session.start(log, at)
    context.store.save(log)
    logger.info("tracker: started at %s", at.isoformat())
    return ActionResult(action="start", at=at, state=state)


def stop_work(context: AppContext, offset: str | None = None, time: str | None = None) -> ActionResult:
    now = context.clock()
    at = resolve_timestamp(now, offset=offset, time=time)
    log = context.store.load_or_empty()
    state = session.stop(log, at)
    worked = work_intervals(log, now)[-1].net
    if worked > timedelta(hours=24):
        logger.warning("tracker: closed a session longer than a day (%s)", worked)
    context.store.save(log)
    logger.info("tracker: stopped at %s after %s", at.isoformat(), worked)
    return ActionResult(action="stop", at=at, state=state, duration=worked)


def start_break(context: AppContext, offset: str | None = None, time: str | None = None) -> ActionResult:
    now = context.clock()
    at = resolve_timestamp(now, offset=offset, time=time)
    log = context.store.load_or_empty()
    state = session.start_break(log, at)
    status = session.describe(log, at)
    context.store.save(log)
    logger.info("tracker: break started at %s", at.isoformat())
    return ActionResult(action="break-start", at=at, state=state, duration=status.worked)


def stop_break(context: AppContext, offset: str | None = None, time: str | None = None) -> ActionResult:
    now = context.clock()
    at = resolve_timestamp(now, offset=offset, time=time)
    log = context.store.load_or_empty()
    break_since = session.describe(log, now).on_break_since
    state = session.stop_break(log, at)
    context.store.save(log)
    length = at - break_since if break_since is not None else None
    if length is not None and length > timedelta(hours=8):
        logger.warning("tracker: unusually long break (%s)", length)
    logger.info("tracker: break stopped at %s", at.isoformat())
    return ActionResult(action="break-stop", at=at, state=state, duration=length)


def add_break(context: AppContext, duration: str) -> ActionResult:
    length = parse_duration(duration)
    at = context.clock()
    log = context.store.load_or_empty()
    state = session.add_break(log, at, length)
    context.store.save(log)
    logger.info("tracker: recorded a finished break of %s", length)
    return ActionResult(action=session.BREAK_DURATION, at=at, state=state, duration=length)


def cancel_last(context: AppContext) -> CancelResult:
    log = context.store.load_or_empty()
    removed = session.cancel(log)
    if removed is None:
        logger.info("tracker: nothing to cancel")
        return CancelResult(removed=None, state=SessionState.IDLE)
    context.store.save(log)
    logger.info("tracker: canceled %s at %s", removed.kind.value, removed.timestamp.isoformat())
    return CancelResult(removed=removed, state=session.derive_state(log))


def session_status(context: AppContext) -> SessionStatus:
    return session.describe(context.store.load_or_empty(), context.clock())


def stats_report(context: AppContext, month: str | None = None) -> StatsReport:
    now = context.clock()
    month_number = parse_month(month, now) if month else None
    log = context.store.load_or_empty()
    return build_report(
        log,
        daily_target=context.config.stats.daily_target,
        window_months=context.config.stats.window_months,
        now=now,
        month=month_number,
    )


def migrate_storage(context: AppContext) -> MigrationResult:
    result = migrate_file(context.store.path)
    if result.legacy_config and not context.config_snapshot.exists:
        current = context.config.stats
        imported = replace(
            context.config,
            stats=StatsSection(
                daily_hours=float(result.legacy_config.get("daily_hours", current.daily_hours)),
                window_months=int(result.legacy_config.get("window_months", current.window_months)),
            ),
        )
        saved = save_config(imported, Path(context.config_snapshot.path))
        logger.info("migrate: imported legacy settings into %s", saved)
    return result
