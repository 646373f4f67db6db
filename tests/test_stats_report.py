from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from stempel import session
from stempel.stats import build_report, window_start, work_intervals
from stempel.storage.models import Event, EventKind, EventLog
from stempel.timeparse import parse_offset


EIGHT_HOURS = timedelta(hours=8)


def _utc(*parts: int) -> datetime:
    return datetime(*parts, tzinfo=timezone.utc)


def _worked_day(log: EventLog, start: datetime, hours: float, break_minutes: int = 0) -> None:
    session.start(log, start)
    if break_minutes:
        session.add_break(log, start + timedelta(hours=1, minutes=break_minutes), timedelta(minutes=break_minutes))
    session.stop(log, start + timedelta(hours=hours))


def test_single_day_with_relative_break() -> None:
    log = EventLog()
    start = _utc(2024, 3, 12, 9, 0)
    session.start(log, start)
    break_at = parse_offset("2h+", start)
    session.start_break(log, break_at)
    session.stop_break(log, parse_offset("15m+", break_at))
    session.stop(log, _utc(2024, 3, 12, 17, 0))

    report = build_report(log, EIGHT_HOURS, window_months=2, now=_utc(2024, 3, 12, 18, 0))

    assert [day.label for day in report.days] == ["2024-03-12"]
    assert report.days[0].worked == timedelta(hours=7, minutes=45)
    assert report.days[0].balance == -timedelta(minutes=15)
    assert report.weeks[0].label == "2024-W11"
    assert report.weeks[0].first_day == date(2024, 3, 11)
    assert report.months[0].label == "2024-03"
    assert report.balance == -timedelta(minutes=15)


def test_session_crossing_midnight_counts_on_start_day() -> None:
    log = EventLog()
    session.start(log, _utc(2024, 3, 12, 22, 0))
    session.stop(log, _utc(2024, 3, 13, 2, 0))

    report = build_report(log, EIGHT_HOURS, window_months=1, now=_utc(2024, 3, 13, 9, 0))

    assert [(day.label, day.worked) for day in report.days] == [("2024-03-12", timedelta(hours=4))]


def test_open_session_is_counted_until_now_and_flagged() -> None:
    log = EventLog()
    session.start(log, _utc(2024, 3, 12, 9, 0))
    session.start_break(log, _utc(2024, 3, 12, 12, 0))

    now = _utc(2024, 3, 12, 12, 30)
    report = build_report(log, EIGHT_HOURS, window_months=1, now=now)

    assert report.days[0].worked == timedelta(hours=3)
    assert report.days[0].in_progress is True
    assert report.weeks[0].in_progress is True
    assert report.months[0].in_progress is True


def test_target_only_counts_active_days() -> None:
    log = EventLog()
    _worked_day(log, _utc(2024, 3, 11, 9, 0), hours=8)
    _worked_day(log, _utc(2024, 3, 13, 9, 0), hours=9)

    report = build_report(log, EIGHT_HOURS, window_months=1, now=_utc(2024, 3, 15, 12, 0))

    week = report.weeks[0]
    assert week.active_days == 2
    assert week.target == timedelta(hours=16)
    assert week.worked == timedelta(hours=17)
    assert week.balance == timedelta(hours=1)


def test_window_drops_older_months() -> None:
    log = EventLog()
    _worked_day(log, _utc(2024, 1, 10, 9, 0), hours=8)
    _worked_day(log, _utc(2024, 2, 10, 9, 0), hours=7)
    _worked_day(log, _utc(2024, 3, 10, 9, 0), hours=6)
    now = _utc(2024, 3, 20, 9, 0)

    report = build_report(log, EIGHT_HOURS, window_months=2, now=now)

    assert report.window_start == date(2024, 2, 1)
    assert [month.label for month in report.months] == ["2024-02", "2024-03"]
    assert build_report(log, EIGHT_HOURS, window_months=0, now=now).is_empty()


def test_window_start_crosses_year_boundary() -> None:
    assert window_start(date(2024, 1, 15), 1) == date(2024, 1, 1)
    assert window_start(date(2024, 1, 15), 3) == date(2023, 11, 1)


def test_huge_window_reaches_back_to_the_first_day() -> None:
    assert window_start(date(2024, 3, 12), 30000) == date.min
    assert window_start(date(2024, 3, 12), 2024 * 12 + 2) == date(1, 1, 1)

    log = EventLog()
    _worked_day(log, _utc(2024, 3, 11, 9, 0), hours=8)
    report = build_report(log, EIGHT_HOURS, window_months=30000, now=_utc(2024, 3, 12, 9, 0))

    assert report.window_start == date.min
    assert [day.label for day in report.days] == ["2024-03-11"]


def test_days_add_up_to_weeks_and_months() -> None:
    log = EventLog()
    for offset, hours in enumerate([8, 7.5, 9, 6, 8.25, 7, 8]):
        _worked_day(log, _utc(2024, 2, 26, 9, 0) + timedelta(days=offset), hours=hours, break_minutes=30)

    report = build_report(log, EIGHT_HOURS, window_months=2, now=_utc(2024, 3, 5, 9, 0))

    total = sum((day.worked for day in report.days), timedelta(0))
    assert sum((week.worked for week in report.weeks), timedelta(0)) == total
    assert sum((month.worked for month in report.months), timedelta(0)) == total
    assert sum(month.active_days for month in report.months) == len(report.days) == 7
    assert [month.label for month in report.months] == ["2024-02", "2024-03"]


def test_month_filter_keeps_only_that_month() -> None:
    log = EventLog()
    _worked_day(log, _utc(2024, 2, 20, 9, 0), hours=8)
    _worked_day(log, _utc(2024, 3, 4, 9, 0), hours=8)

    report = build_report(log, EIGHT_HOURS, window_months=2, now=_utc(2024, 3, 5, 9, 0), month=2)

    assert [day.label for day in report.days] == ["2024-02-20"]


def test_break_is_clipped_to_the_work_interval() -> None:
    log = EventLog(
        [
            Event(EventKind.START, _utc(2024, 3, 12, 9, 0)),
            Event(EventKind.BREAK_START, _utc(2024, 3, 12, 8, 0)),
            Event(EventKind.BREAK_STOP, _utc(2024, 3, 12, 9, 30)),
            Event(EventKind.STOP, _utc(2024, 3, 12, 10, 0)),
        ]
    )

    intervals = work_intervals(log, _utc(2024, 3, 12, 12, 0))

    assert len(intervals) == 1
    assert intervals[0].net == timedelta(minutes=30)
    assert intervals[0].in_progress is False
