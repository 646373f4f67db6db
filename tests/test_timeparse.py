from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from stempel.errors import ParseError
from stempel.timeparse import (
    parse_duration,
    parse_month,
    parse_offset,
    parse_offset_delta,
    parse_time_of_day,
    resolve_timestamp,
)


NOON = datetime(2024, 3, 12, 12, 0, 0, tzinfo=timezone.utc)


def test_offset_mixed_units_subtracts_from_now() -> None:
    assert parse_offset("1h90s-", NOON) == datetime(2024, 3, 12, 10, 58, 30, tzinfo=timezone.utc)


def test_offset_is_deterministic_for_same_reference() -> None:
    assert parse_offset("2h15m+", NOON) == parse_offset("2h15m+", NOON)


def test_offset_units_in_any_order_and_repeated() -> None:
    assert parse_offset_delta("30m1h+") == timedelta(hours=1, minutes=30)
    assert parse_offset_delta("1h1h-") == -timedelta(hours=2)
    assert parse_offset_delta("0s+") == timedelta(0)


def test_offset_unknown_unit_names_fragment() -> None:
    with pytest.raises(ParseError) as exc:
        parse_offset("10x+", NOON)
    assert exc.value.fragment == "x"
    assert exc.value.error["code"] == "parse_error"


@pytest.mark.parametrize(
    ("expr", "fragment"),
    [
        ("10m", "10m"),
        ("h+", "h"),
        ("10+", "10"),
        ("+", "+"),
        ("1h 2m+", " "),
    ],
)
def test_offset_malformed_inputs(expr: str, fragment: str) -> None:
    with pytest.raises(ParseError) as exc:
        parse_offset(expr, NOON)
    assert exc.value.fragment == fragment


def test_offset_empty_is_rejected() -> None:
    with pytest.raises(ParseError):
        parse_offset("   ", NOON)


def test_time_of_day_uses_reference_date_and_zone() -> None:
    resolved = parse_time_of_day("09:05", NOON.replace(second=41, microsecond=7))
    assert resolved == datetime(2024, 3, 12, 9, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize(("text", "fragment"), [("24:00", "24"), ("12:60", "60"), ("9am", "9am")])
def test_time_of_day_out_of_range(text: str, fragment: str) -> None:
    with pytest.raises(ParseError) as exc:
        parse_time_of_day(text, NOON)
    assert exc.value.fragment == fragment


def test_absolute_time_wins_over_offset() -> None:
    resolved = resolve_timestamp(NOON, offset="1h+", time="08:30")
    assert resolved == datetime(2024, 3, 12, 8, 30, tzinfo=timezone.utc)
    assert resolve_timestamp(NOON, offset="1h+") == NOON + timedelta(hours=1)
    assert resolve_timestamp(NOON) == NOON


def test_duration_parsing() -> None:
    assert parse_duration("0:15") == timedelta(minutes=15)
    assert parse_duration("26:05") == timedelta(hours=26, minutes=5)
    with pytest.raises(ParseError):
        parse_duration("1:75")
    with pytest.raises(ParseError):
        parse_duration("15m")


def test_month_names() -> None:
    assert parse_month("March", NOON) == 3
    assert parse_month("dec", NOON) == 12
    assert parse_month("current", NOON) == 3
    assert parse_month("7", NOON) == 7
    with pytest.raises(ParseError):
        parse_month("13", NOON)
    with pytest.raises(ParseError):
        parse_month("someday", NOON)
