"""
Tests for wall-clock time helpers.
"""
from datetime import date

import pytest

from salonbook.lib.timeutils import (
    InvalidTimeFormat,
    day_of_week,
    intervals_overlap,
    minutes_to_time,
    normalize_time,
    slot_starts,
    time_to_minutes,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "value,expected",
    [("00:00", 0), ("09:30", 570), ("9:05", 545), ("23:59", 1439), ("12:00", 720)],
)
def test_time_to_minutes(value, expected):
    assert time_to_minutes(value) == expected


@pytest.mark.unit
@pytest.mark.parametrize("value", ["24:00", "12:60", "1230", "", "ab:cd", "12:5", None, 930])
def test_time_to_minutes_rejects_invalid(value):
    with pytest.raises(InvalidTimeFormat):
        time_to_minutes(value)


@pytest.mark.unit
def test_invalid_time_format_is_value_error():
    with pytest.raises(ValueError):
        time_to_minutes("25:00")


@pytest.mark.unit
def test_minutes_to_time_zero_pads():
    assert minutes_to_time(0) == "00:00"
    assert minutes_to_time(545) == "09:05"
    assert minutes_to_time(1439) == "23:59"


@pytest.mark.unit
@pytest.mark.parametrize("value", [-1, 1440, 5000])
def test_minutes_to_time_out_of_range(value):
    with pytest.raises(ValueError):
        minutes_to_time(value)


@pytest.mark.unit
def test_round_trip_every_minute_of_day():
    for minutes in range(0, 1440):
        assert time_to_minutes(minutes_to_time(minutes)) == minutes


@pytest.mark.unit
def test_normalize_time():
    assert normalize_time("9:00") == "09:00"
    assert normalize_time("17:45") == "17:45"


@pytest.mark.unit
def test_intervals_overlap_half_open():
    # 09:00-10:00 vs 09:30-10:30
    assert intervals_overlap(540, 600, 570, 630)
    # containment
    assert intervals_overlap(540, 720, 600, 660)
    # touching endpoints do not overlap
    assert not intervals_overlap(540, 600, 600, 660)
    assert not intervals_overlap(600, 660, 540, 600)
    # disjoint
    assert not intervals_overlap(540, 600, 700, 760)


@pytest.mark.unit
def test_intervals_overlap_is_symmetric():
    pairs = [((540, 600), (570, 630)), ((540, 600), (600, 660)), ((0, 30), (10, 20))]
    for a, b in pairs:
        assert intervals_overlap(*a, *b) == intervals_overlap(*b, *a)


@pytest.mark.unit
def test_slot_starts_fit_inside_window():
    # 09:00-11:00, 60 minute slots, 30 minute stride
    assert list(slot_starts(540, 660, 60, 30)) == [540, 570, 600]


@pytest.mark.unit
def test_slot_starts_empty_when_window_shorter_than_duration():
    assert list(slot_starts(540, 570, 60, 30)) == []


@pytest.mark.unit
def test_slot_starts_requires_positive_stride():
    with pytest.raises(ValueError):
        list(slot_starts(540, 600, 30, 0))


@pytest.mark.unit
def test_day_of_week_sunday_is_zero():
    assert day_of_week(date(2024, 1, 7)) == 0  # Sunday
    assert day_of_week(date(2024, 1, 8)) == 1  # Monday
    assert day_of_week(date(2024, 1, 13)) == 6  # Saturday
