"""Aggregate an event log into day, ISO-week and month buckets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from stempel.session import derive_state
from stempel.storage.models import EventKind, EventLog


@dataclass(slots=True)
class WorkInterval:
    start: datetime
    end: datetime
    net: timedelta
    in_progress: bool = False


@dataclass(slots=True)
class Bucket:
    label: str
    first_day: date
    worked: timedelta = timedelta(0)
    active_days: int = 0
    target: timedelta = timedelta(0)
    in_progress: bool = False

    @property
    def balance(self) -> timedelta:
        return self.worked - self.target


@dataclass(slots=True)
class StatsReport:
    days: list[Bucket] = field(default_factory=list)
    weeks: list[Bucket] = field(default_factory=list)
    months: list[Bucket] = field(default_factory=list)
    window_start: date | None = None

    @property
    def worked(self) -> timedelta:
        return sum((bucket.worked for bucket in self.days), timedelta(0))

    @property
    def target(self) -> timedelta:
        return sum((bucket.target for bucket in self.days), timedelta(0))

    @property
    def balance(self) -> timedelta:
        return self.worked - self.target

    def is_empty(self) -> bool:
        return not self.days


def _overlap(start: datetime, end: datetime, lower: datetime, upper: datetime) -> timedelta:
    return max(timedelta(0), min(end, upper) - max(start, lower))


def _interval(start: datetime, end: datetime, breaks: list[tuple[datetime, datetime]], in_progress: bool) -> WorkInterval:
    gross = max(timedelta(0), end - start)
    paused = sum((_overlap(b_start, b_end, start, end) for b_start, b_end in breaks), timedelta(0))
    return WorkInterval(start=start, end=end, net=max(timedelta(0), gross - paused), in_progress=in_progress)


def work_intervals(log: EventLog, now: datetime) -> list[WorkInterval]:
    """Pair each start with the next stop in action order; an open session runs until ``now``."""
    derive_state(log)
    intervals: list[WorkInterval] = []
    started: datetime | None = None
    break_started: datetime | None = None
    breaks: list[tuple[datetime, datetime]] = []
    for event in log:
        if event.kind is EventKind.START:
            started, break_started, breaks = event.timestamp, None, []
        elif event.kind is EventKind.BREAK_START:
            break_started = event.timestamp
        elif event.kind is EventKind.BREAK_STOP and break_started is not None:
            breaks.append((break_started, event.timestamp))
            break_started = None
        elif event.kind is EventKind.STOP and started is not None:
            intervals.append(_interval(started, event.timestamp, breaks, in_progress=False))
            started = None
    if started is not None:
        if break_started is not None:
            breaks.append((break_started, now))
        intervals.append(_interval(started, now, breaks, in_progress=True))
    return intervals


def window_start(today: date, window_months: int) -> date:
    """First day of the oldest month kept when showing ``window_months`` months up to ``today``."""
    index = today.year * 12 + (today.month - 1) - (window_months - 1)
    if index < 12:
        return date.min
    return date(index // 12, index % 12 + 1, 1)


def _roll_up(days: list[Bucket], key_fn, label_fn, daily_target: timedelta) -> list[Bucket]:
    grouped: dict[tuple[int, int], Bucket] = {}
    for day in days:
        key = key_fn(day.first_day)
        bucket = grouped.get(key)
        if bucket is None:
            label, first_day = label_fn(key)
            bucket = grouped[key] = Bucket(label=label, first_day=first_day)
        bucket.worked += day.worked
        bucket.active_days += day.active_days
        bucket.in_progress = bucket.in_progress or day.in_progress
    for bucket in grouped.values():
        bucket.target = daily_target * bucket.active_days
    return [grouped[key] for key in sorted(grouped)]


def build_report(
    log: EventLog,
    daily_target: timedelta,
    window_months: int,
    now: datetime,
    month: int | None = None,
) -> StatsReport:
    if window_months <= 0:
        return StatsReport()

    first_kept = window_start(now.date(), window_months)
    per_day: dict[date, Bucket] = {}
    for interval in work_intervals(log, now):
        # a session belongs to the day it started on, even past midnight
        day = interval.start.astimezone(now.tzinfo).date()
        if day < first_kept or (month is not None and day.month != month):
            continue
        bucket = per_day.get(day)
        if bucket is None:
            bucket = per_day[day] = Bucket(label=day.isoformat(), first_day=day, active_days=1, target=daily_target)
        bucket.worked += interval.net
        bucket.in_progress = bucket.in_progress or interval.in_progress

    days = [per_day[day] for day in sorted(per_day)]
    weeks = _roll_up(
        days,
        key_fn=lambda d: tuple(d.isocalendar())[:2],
        label_fn=lambda key: (f"{key[0]}-W{key[1]:02d}", date.fromisocalendar(key[0], key[1], 1)),
        daily_target=daily_target,
    )
    months = _roll_up(
        days,
        key_fn=lambda d: (d.year, d.month),
        label_fn=lambda key: (f"{key[0]}-{key[1]:02d}", date(key[0], key[1], 1)),
        daily_target=daily_target,
    )
    return StatsReport(days=days, weeks=weeks, months=months, window_start=first_kept)
