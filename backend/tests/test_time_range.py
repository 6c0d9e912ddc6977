import itertools

import pytest

from schoolsched.core.exceptions import InvalidRange, InvalidTimeFormat
from schoolsched.services.time_range import MINUTES_PER_DAY, TimeRange, canonical_time, normalize, overlaps, parse_time


@pytest.mark.parametrize(
    ("value", "minutes"),
    [("00:00", 0), ("9:05", 545), ("09:05", 545), ("23:59", 1439), (" 12:30 ", 750)],
)
def test_parse_time_accepts_24_hour_values(value, minutes):
    assert parse_time(value) == minutes


@pytest.mark.parametrize("value", ["24:00", "12:60", "9", "09:5", "ab:cd", "", "12:00:00", None, 900])
def test_parse_time_rejects_malformed_values(value):
    with pytest.raises(InvalidTimeFormat):
        parse_time(value)


def test_invalid_time_is_also_a_value_error():
    with pytest.raises(ValueError):
        parse_time("25:00")


def test_canonical_time_zero_pads():
    assert canonical_time("7:00") == "07:00"


def test_zero_length_range_is_rejected():
    with pytest.raises(InvalidRange):
        normalize("09:00", "09:00")


def test_overnight_range_is_shifted_past_midnight():
    span = normalize("22:00", "02:00")

    assert span == TimeRange(1320, 1560)
    assert span.duration == 240
    assert span.is_overnight
    assert str(span) == "22:00-02:00"


def test_overnight_range_overlaps_late_evening_only():
    night = normalize("22:00", "02:00")

    assert night.overlaps(normalize("23:00", "23:30"))
    assert not night.overlaps(normalize("10:00", "11:00"))


def test_touching_ranges_do_not_overlap():
    assert not overlaps(normalize("09:00", "10:00"), normalize("10:00", "11:00"))


def test_time_range_bounds_are_enforced():
    with pytest.raises(ValueError):
        TimeRange(600, 600)
    with pytest.raises(ValueError):
        TimeRange(-1, 30)
    with pytest.raises(ValueError):
        TimeRange(0, MINUTES_PER_DAY + 1)


SAMPLE_RANGES = [
    ("08:00", "09:00"),
    ("08:30", "09:30"),
    ("09:00", "10:00"),
    ("09:15", "09:45"),
    ("10:00", "11:00"),
    ("23:00", "01:00"),
    ("00:30", "01:30"),
]


@pytest.mark.parametrize(("first", "second"), list(itertools.product(SAMPLE_RANGES, repeat=2)))
def test_overlap_is_symmetric(first, second):
    a = normalize(*first)
    b = normalize(*second)

    assert overlaps(a, b) == overlaps(b, a)


@pytest.mark.parametrize("bounds", SAMPLE_RANGES)
def test_range_overlaps_itself_but_not_its_neighbours(bounds):
    span = normalize(*bounds)
    before = TimeRange(max(span.start_minutes - 30, 0), span.start_minutes) if span.start_minutes else None

    assert overlaps(span, span)
    if before is not None:
        assert not overlaps(span, before)
