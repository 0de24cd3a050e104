"""Millisecond and second timestamp helpers."""

from __future__ import annotations

import re
import time
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_YEAR_3000_SECONDS = 32_503_680_000
_YEAR_3000_MILLISECONDS = 32_503_680_000_000
_NS_PER_MS = 1_000_000
_NS_PER_DAY = 86_400 * 1_000_000_000
_MONTH_PATTERN = re.compile(r"([0-9]{4})([0-9]{2})")

_BEFORE_1970 = "got a timestamp that's before 1970, this is probably bad"


class TimestampConversionError(ValueError):
    """A timestamp was not in the expected unit; ``timestamp`` holds the converted value."""

    def __init__(self, message: str, timestamp: int) -> None:
        super().__init__(message)
        self.timestamp = timestamp


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


def milliseconds_now() -> int:
    """Return the current time in milliseconds since the epoch."""
    return _trunc_div(time.time_ns(), _NS_PER_MS)


def milliseconds_unix(t: datetime) -> int:
    """Return ``t`` in milliseconds since the epoch; naive times are local."""
    if t.tzinfo is None:
        t = t.astimezone()
    delta = t - _EPOCH
    micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
    return _trunc_div(micros, 1000)


def milliseconds_time(ms: int) -> datetime:
    """Return the UTC time for a millisecond timestamp."""
    return _EPOCH + timedelta(milliseconds=ms)


def assert_milliseconds(ms: int) -> int:
    """Return ``ms`` if it is in milliseconds.

    Otherwise raise TimestampConversionError carrying the value converted
    to milliseconds.
    """
    if ms == 0:
        raise TimestampConversionError(_BEFORE_1970, ms)
    if ms < _YEAR_3000_SECONDS:
        raise TimestampConversionError(
            "got timestamp was in seconds (not milliseconds), had to convert", ms * 1000
        )
    converted = False
    while ms > _YEAR_3000_MILLISECONDS:
        ms = _trunc_div(ms, 1000)
        converted = True
    if converted:
        raise TimestampConversionError(
            "got timestamp that was not milliseconds, had to convert", ms
        )
    return ms


def assert_seconds(timestamp: int) -> int:
    """Return ``timestamp`` if it is in seconds.

    Otherwise raise TimestampConversionError carrying the value converted
    to seconds.
    """
    if timestamp < 0:
        raise TimestampConversionError(_BEFORE_1970, timestamp)
    converted = False
    while timestamp > _YEAR_3000_SECONDS:
        timestamp = _trunc_div(timestamp, 1000)
        converted = True
    if converted:
        raise TimestampConversionError(
            "got timestamp that was not in seconds, had to convert", timestamp
        )
    return timestamp


def _days_from_civil(year: int, month: int, day: int) -> int:
    """Days since 1970-01-01 in the proleptic Gregorian calendar."""
    year -= month <= 2
    era = year // 400
    year_of_era = year - era * 400
    day_of_year = (153 * (month + (-3 if month > 2 else 9)) + 2) // 5 + day - 1
    day_of_era = year_of_era * 365 + year_of_era // 4 - year_of_era // 100 + day_of_year
    return era * 146_097 + day_of_era - 719_468


def _parse_month(text: str) -> tuple[int, int]:
    match = _MONTH_PATTERN.fullmatch(text)
    if match is None:
        raise ValueError(f'cannot parse "{text}" as a yyyymm month')
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f'month out of range in "{text}"')
    return year, month


def _month_start_ns(year: int, month: int) -> int:
    return _days_from_civil(year, month, 1) * _NS_PER_DAY


def get_periods_start_and_end_utc(first_yyyymm: str, last_yyyymm: str) -> tuple[int, int]:
    """Return the UTC millisecond timestamps of the first instant of
    ``first_yyyymm`` and the last instant of ``last_yyyymm``."""
    start_year, start_month = _parse_month(first_yyyymm)
    end_year, end_month = _parse_month(last_yyyymm)

    start_ns = _month_start_ns(start_year, start_month)
    if end_month == 12:
        next_ns = _month_start_ns(end_year + 1, 1)
    else:
        next_ns = _month_start_ns(end_year, end_month + 1)
    end_ns = next_ns - 1

    if start_ns > end_ns:
        raise ValueError(f"start {first_yyyymm} may not be after end {last_yyyymm}")

    return _trunc_div(start_ns, _NS_PER_MS), _trunc_div(end_ns, _NS_PER_MS)