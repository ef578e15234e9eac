import datetime as dt

import pytest

from time_schedule.schedule_models import Entry, ScheduleValidationError, WindowSettings
from time_schedule.timegrid import (
    TimeGrid,
    format_duration,
    minutes_to_pixels,
    minutes_to_time,
    parse_time,
    pixels_to_minutes,
    snap,
    time_to_minutes,
)


def _grid(**overrides):
    return TimeGrid.from_settings(WindowSettings(**overrides))


def test_times_before_window_start_roll_past_midnight():
    assert time_to_minutes("09:15", 7) == 555
    assert time_to_minutes("00:30", 7) == 1470
    assert time_to_minutes("06:59", 7) == 24 * 60 + 6 * 60 + 59
    assert minutes_to_time(1470) == "00:30"


def test_round_trip_for_every_time_in_window():
    for minutes in range(7 * 60, 25 * 60, 5):
        time = minutes_to_time(minutes)
        assert time_to_minutes(time, 7) == minutes
        assert minutes_to_time(time_to_minutes(time, 7)) == time


def test_snap_rounds_to_nearest_and_is_idempotent():
    assert snap(44, 30) == 30
    assert snap(45, 30) == 60
    assert snap(7.4, 5) == 5
    for grid_minutes in (5, 10, 15, 30):
        for value in range(-100, 2000, 7):
            once = snap(value, grid_minutes)
            assert once % grid_minutes == 0
            assert snap(once, grid_minutes) == once


def test_parse_time_rejects_malformed_values():
    assert parse_time("7:05") == (7, 5)
    for bad in ("25:00", "9:5", "noon", "12:60"):
        with pytest.raises(ValueError):
            parse_time(bad)


def test_pixel_geometry_per_granularity():
    assert _grid().hour_height == 48
    assert _grid().total_height == 18 * 48
    assert _grid(grid_minutes=15).hour_height == 60
    assert _grid(grid_minutes=10).hour_height == 72
    assert _grid(grid_minutes=5).hour_height == 120


def test_unsupported_granularity_is_rejected():
    with pytest.raises(ScheduleValidationError):
        _grid(grid_minutes=20)


def test_window_end_before_start_wraps_midnight():
    grid = _grid(start_hour=22, end_hour=2)
    assert grid.end_hour == 26
    assert grid.total_minutes == 240
    assert grid.offset("01:30") == 210


def test_linear_scale_between_minutes_and_pixels():
    grid = _grid()
    assert grid.to_pixels(60) == pytest.approx(48)
    assert grid.to_minutes(48) == pytest.approx(60)
    assert minutes_to_pixels(30, 864, 1080) == pytest.approx(24)
    assert pixels_to_minutes(24, 864, 1080) == pytest.approx(30)


def test_degenerate_window_maps_to_zero_without_dividing_by_zero():
    grid = _grid(start_hour=9, end_hour=9)
    assert grid.is_degenerate
    assert grid.total_height == 0
    assert grid.to_pixels(30) == 0
    assert grid.to_minutes(30) == 0
    assert grid.grid_lines() == []
    assert grid.hour_labels() == []
    assert minutes_to_pixels(10, 100, 0) == 0
    assert pixels_to_minutes(10, 0, 60) == 0

    milestone = Entry(id="m", date=dt.date(2024, 5, 1), start_time="09:00", end_time="09:00")
    assert grid.display_height_of(milestone) == 0


def test_milestone_height_has_a_floor():
    milestone = Entry(id="m", date=dt.date(2024, 5, 1), start_time="09:00", end_time="09:00")
    assert _grid().raw_height_of(milestone) == 0
    assert _grid().display_height_of(milestone) == 20
    assert _grid(grid_minutes=5).display_height_of(milestone) == 40


def test_short_entries_keep_a_visible_sliver():
    grid = _grid()
    entry = Entry(id="e", date=dt.date(2024, 5, 1), start_time="09:00", end_time="09:01")
    assert grid.display_height_of(entry) == 2


def test_minutes_at_clamps_and_snaps_pointer():
    grid = _grid()
    assert grid.minutes_at(100) == 120
    assert grid.minutes_at(-50) == 0
    assert grid.minutes_at(10_000) == grid.total_minutes
    assert grid.time_at(grid.minutes_at(96)) == "09:00"


def test_grid_lines_mark_whole_hours_as_major():
    lines = _grid().grid_lines()
    assert len(lines) == 18 * 2 + 1
    assert lines[0] == (0.0, True)
    assert lines[1] == (pytest.approx(24.0), False)
    assert lines[2][1] is True


def test_hour_labels_wrap_modulo_24():
    labels = _grid().hour_labels()
    assert len(labels) == 18
    assert labels[0] == (0, "7:00")
    assert labels[-1][1] == "0:00"


def test_format_duration():
    assert format_duration("09:00", "10:30") == "1h 30m"
    assert format_duration("09:00", "11:00") == "2h"
    assert format_duration("09:00", "09:45") == "45m"
    assert format_duration("09:00", "09:00") == ""
    assert format_duration("10:00", "09:00") == ""
    assert format_duration("23:30", "00:30", 7) == "1h"


def test_end_at_midnight_closes_the_day_in_a_midnight_window():
    grid = _grid(start_hour=0, end_hour=24)
    entry = Entry(id="e", date=dt.date(2024, 5, 1), start_time="23:00", end_time="00:00")
    assert grid.end_offset("23:00", "00:00") == 24 * 60
    assert grid.raw_height_of(entry) == pytest.approx(48)
    assert grid.display_height_of(entry) == pytest.approx(48)
    assert format_duration("23:00", "00:00") == "1h"
