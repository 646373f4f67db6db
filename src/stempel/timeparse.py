"""Resolve offset expressions and clock times into concrete timestamps.

Everything here is a pure function of its arguments; "now" is always passed in.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from stempel.errors import ParseError


_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}
_DIGITS = "0123456789"
_TIME_OF_DAY_RE = re.compile(r"^([0-9]{1,2}):([0-9]{1,2})$")
_DURATION_RE = re.compile(r"^([0-9]+):([0-9]{1,2})$")

_MONTH_NAMES = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)


def parse_offset_delta(expr: str) -> timedelta:
    """Parse ``<int><unit>...<sign>`` (e.g. ``1h30m-``) into a signed timedelta."""
    text = expr.strip()
    if not text:
        raise ParseError("empty offset expression", expr)
    sign = text[-1]
    if sign not in "+-":
        raise ParseError("offset must end with '+' or '-'", text)
    body = text[:-1]
    if not body:
        raise ParseError("offset has no terms before the sign", text)

    seconds = 0
    digits = ""
    for char in body:
        if char in _DIGITS:
            digits += char
            continue
        if char not in _UNIT_SECONDS:
            if char.isalpha():
                raise ParseError("unknown unit", char)
            raise ParseError("unexpected character in offset", char)
        if not digits:
            raise ParseError("missing number before unit", char)
        seconds += int(digits) * _UNIT_SECONDS[char]
        digits = ""
    if digits:
        raise ParseError("number without unit", digits)

    try:
        delta = timedelta(seconds=seconds)
    except OverflowError as exc:
        raise ParseError("offset out of range", text) from exc
    return delta if sign == "+" else -delta


def parse_offset(expr: str, now: datetime) -> datetime:
    delta = parse_offset_delta(expr)
    try:
        return now + delta
    except OverflowError as exc:
        raise ParseError("offset out of range", expr.strip()) from exc


def parse_time_of_day(text: str, now: datetime) -> datetime:
    """Return today's timestamp (in ``now``'s timezone) at ``HH:MM``."""
    raw = text.strip()
    match = _TIME_OF_DAY_RE.match(raw)
    if not match:
        raise ParseError("expected time of day as HH:MM", raw)
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23:
        raise ParseError("hour must be within 0..23", match.group(1))
    if minute > 59:
        raise ParseError("minute must be within 0..59", match.group(2))
    return now.replace(hour=hour, minute=minute, second=0, microsecond=0)


def parse_duration(text: str) -> timedelta:
    """Parse an ``HH:MM`` duration; hours are unbounded."""
    raw = text.strip()
    match = _DURATION_RE.match(raw)
    if not match:
        raise ParseError("expected duration as HH:MM", raw)
    minutes = int(match.group(2))
    if minutes > 59:
        raise ParseError("minute must be within 0..59", match.group(2))
    return timedelta(hours=int(match.group(1)), minutes=minutes)


def parse_month(text: str, now: datetime) -> int:
    """Month number from a name, a three-letter abbreviation, ``1..12`` or ``current``."""
    lowered = text.strip().lower()
    if lowered in {"current", "now"}:
        return now.month
    if lowered.isdigit() and lowered.isascii():
        number = int(lowered)
        if 1 <= number <= 12:
            return number
        raise ParseError("month must be within 1..12", text.strip())
    for index, name in enumerate(_MONTH_NAMES, start=1):
        if lowered == name or (len(lowered) == 3 and name.startswith(lowered)):
            return index
    raise ParseError("unknown month", text.strip())


def resolve_timestamp(now: datetime, offset: str | None = None, time: str | None = None) -> datetime:
    """Pick the action timestamp; an absolute time of day wins over an offset."""
    if time:
        return parse_time_of_day(time, now)
    if offset:
        return parse_offset(offset, now)
    return now
