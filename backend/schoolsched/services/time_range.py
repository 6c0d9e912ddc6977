"""Minute-of-day intervals used for every overlap comparison.

A range is half-open, ``[start, end)``, so two periods that merely touch
(``09:00-10:00`` and ``10:00-11:00``) do not overlap. An end time earlier than
the start time means the allocation runs past midnight; the end is then shifted
by one day (``22:00-02:00`` becomes ``[1320, 1560)``).
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from schoolsched.core.exceptions import InvalidRange, InvalidTimeFormat

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


def parse_time(value: str) -> int:
    """Return minutes since midnight for an ``H:MM``/``HH:MM`` 24-hour string."""
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)
    match = TIME_PATTERN.match(value.strip())
    if match is None:
        raise InvalidTimeFormat(value)
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def canonical_time(value: str) -> str:
    """Zero-pad a valid time string (``9:05`` -> ``09:05``)."""
    return format_minutes(parse_time(value))


@dataclass(frozen=True)
class TimeRange:
    start_minutes: int
    end_minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.start_minutes < MINUTES_PER_DAY:
            raise ValueError(f"start_minutes out of range: {self.start_minutes}")
        if not self.start_minutes < self.end_minutes < self.start_minutes + MINUTES_PER_DAY:
            raise ValueError(f"end_minutes out of range: {self.end_minutes}")

    @property
    def duration(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def is_overnight(self) -> bool:
        return self.end_minutes > MINUTES_PER_DAY

    def overlaps(self, other: "TimeRange") -> bool:
        return overlaps(self, other)

    def __str__(self) -> str:
        return f"{format_minutes(self.start_minutes)}-{format_minutes(self.end_minutes)}"


def normalize(start_time: str, end_time: str) -> TimeRange:
    start = parse_time(start_time)
    end = parse_time(end_time)
    if start == end:
        raise InvalidRange(start_time, end_time)
    if end < start:
        end += MINUTES_PER_DAY
    return TimeRange(start, end)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    return a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes
