"""Command dispatch and plain-text rendering for the stempel CLI."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from stempel.config import StatsSection, save_config
from stempel.errors import MigrationError, ParseError, StateError, StempelError, StorageError
from stempel.orchestrator import (
    ActionResult,
    AppContext,
    CancelResult,
    add_break,
    cancel_last,
    migrate_storage,
    session_status,
    start_break,
    start_work,
    stats_report,
    stop_break,
    stop_work,
)
from stempel.session import SessionState, SessionStatus
from stempel.stats import Bucket, StatsReport
from stempel.storage.migrate import MigrationResult


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def format_duration(value: timedelta) -> str:
    """``H:MMh`` with a leading minus for negative values."""
    seconds = int(value.total_seconds())
    sign = "-" if seconds < 0 else ""
    hours, minutes = divmod(abs(seconds) // 60, 60)
    return f"{sign}{hours}:{minutes:02d}h"


def _clock_time(value: datetime) -> str:
    return value.astimezone().strftime("%H:%M")


def _local_stamp(value: datetime) -> str:
    return value.astimezone().strftime("%d/%m/%Y, %H:%M (%a)")


def render_action(result: ActionResult) -> str:
    if result.action == "start":
        return f"You started at {_clock_time(result.at)}, let's go!"
    if result.action == "stop":
        worked = format_duration(result.duration or timedelta(0))
        return f"You worked {worked} today. Enjoy your evening \U0001F389"
    if result.action == "break-start":
        return f"Started a break at {_clock_time(result.at)} after {format_duration(result.duration or timedelta(0))} of work."
    if result.action == "break-stop":
        length = format_duration(result.duration) if result.duration is not None else "?"
        return f"You had a break for {length}. Way to go!"
    if result.action == "break-duration":
        return f"Recorded a break of {format_duration(result.duration or timedelta(0))}."
    return f"{result.action} at {_clock_time(result.at)}"


def render_cancel(result: CancelResult) -> str:
    if result.removed is None:
        return "Nothing to cancel."
    action = result.removed.action or result.removed.kind.value.replace("_", "-")
    state = result.state.value.replace("_", " ")
    return f"Canceled last action ({action} at {_clock_time(result.removed.timestamp)}), now {state}."


def render_status(status: SessionStatus) -> str:
    if status.state is SessionState.IDLE or status.started_at is None:
        return "Not working right now."
    lines = [
        f"Working since {_local_stamp(status.started_at)}: {format_duration(status.worked)} so far",
    ]
    if status.breaks:
        lines.append(f"Breaks: {format_duration(status.breaks)}")
    if status.on_break_since is not None:
        lines.append(f"On a break since {_clock_time(status.on_break_since)}")
    return "\n".join(lines)


def _bucket_line(bucket: Bucket, indent: str) -> str:
    flag = " (in progress)" if bucket.in_progress else ""
    return (
        f"{indent}{bucket.label}: {format_duration(bucket.worked):>9} "
        f"[target {format_duration(bucket.target)}, balance {format_duration(bucket.balance)}]{flag}"
    )


def render_stats(report: StatsReport) -> str:
    if report.is_empty():
        return "No tracked work in the selected window."
    lines: list[str] = []
    for month in report.months:
        lines.append(_bucket_line(month, "Month "))
        month_key = (month.first_day.year, month.first_day.month)
        for week in report.weeks:
            week_key = tuple(week.first_day.isocalendar())[:2]
            week_days = [
                day
                for day in report.days
                if (day.first_day.year, day.first_day.month) == month_key
                and tuple(day.first_day.isocalendar())[:2] == week_key
            ]
            if not week_days:
                continue
            lines.append(_bucket_line(week, "  Week "))
            for day in week_days:
                lines.append(_bucket_line(day, "    "))
    lines.append(
        f"Total: {format_duration(report.worked)} [target {format_duration(report.target)}, "
        f"balance {format_duration(report.balance)}]"
    )
    return "\n".join(lines)


def _bucket_payload(bucket: Bucket) -> dict[str, object]:
    return {
        "label": bucket.label,
        "first_day": bucket.first_day.isoformat(),
        "worked_seconds": int(bucket.worked.total_seconds()),
        "target_seconds": int(bucket.target.total_seconds()),
        "balance_seconds": int(bucket.balance.total_seconds()),
        "active_days": bucket.active_days,
        "in_progress": bucket.in_progress,
    }


def stats_payload(report: StatsReport) -> dict[str, object]:
    return {
        "window_start": report.window_start.isoformat() if report.window_start else None,
        "days": [_bucket_payload(b) for b in report.days],
        "weeks": [_bucket_payload(b) for b in report.weeks],
        "months": [_bucket_payload(b) for b in report.months],
        "total": {
            "worked_seconds": int(report.worked.total_seconds()),
            "target_seconds": int(report.target.total_seconds()),
            "balance_seconds": int(report.balance.total_seconds()),
        },
    }


def render_migration(result: MigrationResult) -> str:
    if not result.migrated:
        return "Storage already uses the current format, nothing to migrate."
    return f"Migrated {len(result.log)} events from {result.layout} format. Backup written to {result.backup_path}."


def configure_interactive(context: AppContext, input_fn: Callable[[str], str] = input) -> int:
    """Prompt for each setting; a blank or invalid answer keeps the current value."""
    current = context.config.stats
    if context.config_snapshot.exists:
        print("Current configuration:")
    else:
        print("Nothing configured yet, showing defaults:")
    print(f"Number of months in stats: {current.window_months}")
    print(f"Daily working hours: {current.daily_hours:g}")
    print()
    print("Enter your desired value, leave blank for keeping the current value.")

    raw_months = input_fn(f"    Number of months to display ({current.window_months}): ").strip()
    try:
        window_months = int(raw_months) if raw_months else current.window_months
    except ValueError:
        window_months = current.window_months
    if window_months < 0:
        window_months = current.window_months

    raw_hours = input_fn(f"    Daily working hours ({current.daily_hours:g}): ").strip()
    try:
        daily_hours = float(raw_hours) if raw_hours else current.daily_hours
    except ValueError:
        daily_hours = current.daily_hours
    if not 0 <= daily_hours <= 24:
        daily_hours = current.daily_hours

    updated = replace(context.config, stats=StatsSection(daily_hours=daily_hours, window_months=window_months))
    try:
        path = save_config(updated, Path(context.config_snapshot.path))
    except OSError as exc:
        print(f"Failed to save configuration: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Configuration saved to {path}")
    return EXIT_OK


def _dispatch(context: AppContext, args: argparse.Namespace) -> int:
    command = args.command
    if command == "start":
        print(render_action(start_work(context, offset=args.offset, time=args.time)))
    elif command == "stop":
        print(render_action(stop_work(context, offset=args.offset, time=args.time)))
    elif command == "break":
        sub = args.break_command
        if sub == "start":
            print(render_action(start_break(context, offset=args.offset, time=args.time)))
        elif sub == "stop":
            print(render_action(stop_break(context, offset=args.offset, time=args.time)))
        else:
            print(render_action(add_break(context, args.duration)))
    elif command == "cancel":
        print(render_cancel(cancel_last(context)))
    elif command == "status":
        print(render_status(session_status(context)))
    elif command == "stats":
        report = stats_report(context, month=args.month)
        if args.json:
            print(json.dumps(stats_payload(report), indent=2))
        else:
            print(render_stats(report))
    elif command == "migrate":
        print(render_migration(migrate_storage(context)))
    elif command == "configure":
        return configure_interactive(context)
    else:
        print(f"Unknown command: {command}", file=sys.stderr)
        return EXIT_USAGE
    return EXIT_OK


def execute_command(context: AppContext, args: argparse.Namespace) -> int:
    """Run one parsed command and map tracker errors to exit codes."""
    try:
        return _dispatch(context, args)
    except ParseError as exc:
        print(f"Invalid input: {exc.message}", file=sys.stderr)
        return EXIT_USAGE
    except StateError as exc:
        print(f"Cannot {exc.action} while {exc.state.replace('_', ' ')}: {exc.message}", file=sys.stderr)
        return EXIT_USAGE
    except MigrationError as exc:
        print(f"Migration refused: {exc.message}", file=sys.stderr)
        return EXIT_FAILURE
    except StorageError as exc:
        print(exc.message, file=sys.stderr)
        return EXIT_FAILURE
    except StempelError as exc:
        print(exc.message, file=sys.stderr)
        return EXIT_FAILURE
