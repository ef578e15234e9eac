from __future__ import annotations

import math
import re
from dataclasses import dataclass

from .schedule_models import Entry, WindowSettings, ScheduleValidationError


GRID_ROW_HEIGHTS: dict[int, int] = {30: 24, 15: 15, 10: 12, 5: 10}
"""Pixel height of one grid row for each supported granularity (minutes)."""

MILESTONE_MIN_HEIGHT_PX = 20.0
ENTRY_MIN_HEIGHT_PX = 2.0
MINUTES_PER_DAY = 24 * 60
MIDNIGHT = "00:00"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time(time: str) -> tuple[int, int]:
    """Split an `HH:MM` string into (hour, minute); raises ValueError when malformed."""
    match = _TIME_RE.match(time.strip()) if isinstance(time, str) else None
    if match is None:
        raise ValueError(f"invalid time '{time}', expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"invalid time '{time}', expected HH:MM")
    return hour, minute


def time_to_minutes(time: str, window_start_hour: int) -> int:
    """
    Minutes since midnight of the window's day.

    Hours earlier than the window start belong to the next day, so a window
    such as 07:00-25:00 keeps 00:30 after 23:30 (1470 minutes, not 30).
    """
    hour, minute = parse_time(time)
    if hour < window_start_hour:
        hour += 24
    return hour * 60 + minute


def minutes_to_time(total_minutes: int) -> str:
    hour = (total_minutes // 60) % 24
    minute = total_minutes % 60
    return f"{hour:02d}:{minute:02d}"


def snap(minutes: float, grid_minutes: int) -> int:
    """Round to the nearest grid multiple (halves round up)."""
    return int(math.floor(minutes / grid_minutes + 0.5)) * grid_minutes


def minutes_to_pixels(minutes: float, total_height_px: float, total_window_minutes: int) -> float:
    if total_window_minutes <= 0 or total_height_px <= 0:
        return 0.0
    return minutes * total_height_px / total_window_minutes


def pixels_to_minutes(pixels: float, total_height_px: float, total_window_minutes: int) -> float:
    if total_window_minutes <= 0 or total_height_px <= 0:
        return 0.0
    return pixels * total_window_minutes / total_height_px


def format_duration(start_time: str, end_time: str, window_start_hour: int = 0) -> str:
    """Human readable span such as '1h 30m'; empty for milestones and non-positive spans."""
    if start_time == end_time:
        return ""
    diff = time_to_minutes(end_time, window_start_hour) - time_to_minutes(start_time, window_start_hour)
    if diff < 0 and end_time == MIDNIGHT:
        diff += MINUTES_PER_DAY
    if diff <= 0:
        return ""
    hours, minutes = divmod(diff, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    return " ".join(parts)


@dataclass(frozen=True)
class TimeGrid:
    """
    Vertical geometry of one display window.

    Offsets are minutes since the window start. A window whose end hour is
    lower than its start hour wraps past midnight; a zero or negative span is
    degenerate and maps everything to zero pixels.
    """

    start_hour: int
    end_hour: int
    grid_minutes: int

    @classmethod
    def from_settings(cls, settings: WindowSettings) -> "TimeGrid":
        if settings.grid_minutes not in GRID_ROW_HEIGHTS:
            raise ScheduleValidationError(
                f"unsupported grid granularity {settings.grid_minutes}, expected one of {sorted(GRID_ROW_HEIGHTS)}"
            )
        end_hour = settings.end_hour
        if end_hour < settings.start_hour:
            end_hour += 24
        return cls(start_hour=settings.start_hour, end_hour=end_hour, grid_minutes=settings.grid_minutes)

    @property
    def total_minutes(self) -> int:
        return (self.end_hour - self.start_hour) * 60

    @property
    def is_degenerate(self) -> bool:
        return self.total_minutes <= 0

    @property
    def hour_height(self) -> float:
        return 60 / self.grid_minutes * GRID_ROW_HEIGHTS[self.grid_minutes]

    @property
    def total_height(self) -> float:
        if self.is_degenerate:
            return 0.0
        return self.total_minutes / 60 * self.hour_height

    @property
    def milestone_height(self) -> float:
        return max(MILESTONE_MIN_HEIGHT_PX, self.hour_height / 3)

    def offset(self, time: str) -> int:
        """Minutes from the window start for an `HH:MM` time."""
        return time_to_minutes(time, self.start_hour) - self.start_hour * 60

    def end_offset(self, start_time: str, end_time: str) -> int:
        """Offset of an end time; an end of 00:00 before its start closes the day."""
        start, end = self.offset(start_time), self.offset(end_time)
        if end < start and end_time == MIDNIGHT:
            end += MINUTES_PER_DAY
        return end

    def time_at(self, offset: int) -> str:
        return minutes_to_time(offset + self.start_hour * 60)

    def to_pixels(self, offset: float) -> float:
        return minutes_to_pixels(offset, self.total_height, self.total_minutes)

    def to_minutes(self, pixels: float) -> float:
        return pixels_to_minutes(pixels, self.total_height, self.total_minutes)

    def snap(self, minutes: float) -> int:
        return snap(minutes, self.grid_minutes)

    def minutes_at(self, y: float) -> int:
        """Snapped offset under a pointer y, clamped into the window."""
        clamped = max(0.0, min(y, self.total_height))
        return self.snap(self.to_minutes(clamped))

    def top_of(self, entry: Entry) -> float:
        return self.to_pixels(self.offset(entry.start_time))

    def raw_height_of(self, entry: Entry) -> float:
        return self.to_pixels(self.end_offset(entry.start_time, entry.end_time) - self.offset(entry.start_time))

    def display_height_of(self, entry: Entry) -> float:
        """Height to draw: milestones and slivers get a visible floor."""
        if self.is_degenerate:
            return 0.0
        if entry.is_milestone:
            return self.milestone_height
        return max(ENTRY_MIN_HEIGHT_PX, self.raw_height_of(entry))

    def grid_lines(self) -> list[tuple[float, bool]]:
        """(top, is_major) for every grid line; major lines fall on whole hours."""
        if self.is_degenerate:
            return []
        return [
            (self.to_pixels(m), m % 60 == 0)
            for m in range(0, self.total_minutes + 1, self.grid_minutes)
        ]

    def hour_labels(self) -> list[tuple[float, str]]:
        if self.is_degenerate:
            return []
        return [
            (i * self.hour_height, f"{(self.start_hour + i) % 24}:00")
            for i in range(self.end_hour - self.start_hour)
        ]
