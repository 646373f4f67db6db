"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys

from stempel.config import ensure_runtime_config, read_config_snapshot
from stempel.interfaces.cli import execute_command
from stempel.orchestrator import build_context


def _add_timing(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-o", "--offset", default=None, help="Offset to the current time, e.g. 15m- or 1h30m+")
    group.add_argument("-t", "--time", default=None, help="Time of day for the action as HH:MM")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stempel", description="Track the time you spent working")
    parser.add_argument("-s", "--storage", default=None, help="Path to the storage file")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More log output (-vv for debug)")
    commands = parser.add_subparsers(dest="command", required=True)

    _add_timing(commands.add_parser("start", help="Start a working period"))
    _add_timing(commands.add_parser("stop", help="Stop a working period"))

    breaking = commands.add_parser("break", help="Start or stop a break")
    break_commands = breaking.add_subparsers(dest="break_command", required=True)
    _add_timing(break_commands.add_parser("start", help="Start a break"))
    _add_timing(break_commands.add_parser("stop", help="Stop a break"))
    duration = break_commands.add_parser("duration", aliases=["dur"], help="Record a finished break of HH:MM")
    duration.add_argument("duration")

    commands.add_parser("cancel", help="Cancel the last action of the running period")
    commands.add_parser("status", help="Show the running period")
    stats = commands.add_parser("stats", help="Print statistics about tracked time")
    stats.add_argument("month", nargs="?", default=None, help="Month name, number or 'current'")
    stats.add_argument("--json", action="store_true", help="Print the report as JSON")
    commands.add_parser("migrate", help="Convert a legacy storage file, keeping a .bak copy")
    commands.add_parser("configure", help="Change daily hours and the stats window")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    args = build_parser().parse_args(argv)
    if args.command == "break" and args.break_command == "dur":
        args.break_command = "duration"
    return args


def _setup_logging(level_name: str, verbose: int) -> None:
    level = getattr(logging, level_name.upper(), logging.WARNING)
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = min(level, logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    overrides: dict[str, str] = {}
    if args.storage:
        overrides["paths.storage"] = str(args.storage)

    snapshot = read_config_snapshot(cli_overrides=overrides)
    if snapshot.effective_config is None:
        print(f"Config {snapshot.path} is invalid, using defaults:", file=sys.stderr)
        for issue in snapshot.issues:
            print(f"- {issue}", file=sys.stderr)

    runtime_config = ensure_runtime_config(snapshot)
    if args.storage and snapshot.effective_config is None:
        runtime_config.paths.storage = str(args.storage)
    _setup_logging(runtime_config.logging.level, args.verbose)
    for warning in snapshot.warnings:
        logging.getLogger(__name__).info("config: %s", warning)

    context = build_context(config=runtime_config, snapshot=snapshot)
    return execute_command(context, args)


if __name__ == "__main__":
    sys.exit(main())
