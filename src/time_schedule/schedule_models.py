from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


DEFAULT_LANE_COLOR = "#0ea5e9"
UNCATEGORIZED_LANE_ID = "uncategorized"
"""Key used in hidden-lane settings to hide the synthetic uncategorized lane."""


class ScheduleError(Exception):
    """Base class for every error raised by the time-schedule engine."""


class ScheduleValidationError(ScheduleError):
    """Raised when a day sheet or its settings are malformed."""


class EntryValidationError(ScheduleError):
    """Raised when an edited entry cannot be saved (missing fields, end before start)."""


class StoreError(ScheduleError):
    """Raised by an entry store when it rejects a create, update or delete."""


@dataclass
class Entry:
    """Time-boxed item on a single date; may be nested under a parent entry."""

    id: str | None
    date: dt.date
    start_time: str
    end_time: str
    lane_id: str | None = None
    parent_id: str | None = None
    depth: int = 0
    title: str = ""
    color: str = ""
    location: str = ""
    description: str = ""
    meta: dict[str, Any] | None = None

    @property
    def is_milestone(self) -> bool:
        """Zero-duration entries render as a point marker."""
        return self.start_time == self.end_time

    def snapshot(self) -> "GeometrySnapshot":
        """Fields a drag gesture may change, captured for diffing and revert."""
        return GeometrySnapshot(
            start_time=self.start_time,
            end_time=self.end_time,
            lane_id=self.lane_id,
            color=self.color,
        )

    def restored(self, snapshot: "GeometrySnapshot") -> "Entry":
        return replace(
            self,
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            lane_id=snapshot.lane_id,
            color=snapshot.color,
        )


@dataclass(frozen=True)
class GeometrySnapshot:
    start_time: str
    end_time: str
    lane_id: str | None
    color: str


@dataclass(frozen=True)
class Lane:
    """Categorical column group ("section"); id None is the uncategorized lane."""

    id: str | None
    name: str
    order: int = 0
    color: str = DEFAULT_LANE_COLOR


@dataclass(frozen=True)
class WindowSettings:
    """Display window and grid granularity read at layout time."""

    start_hour: int = 7
    end_hour: int = 25
    grid_minutes: int = 30
    hidden_lane_ids: frozenset[str] = frozenset()


@dataclass
class EntryLayout:
    """
    Layout of one entry for a render pass.

    `top`/`height` are pixels from the window start; `left`/`width` are
    percentages of the full lane row; `content_width_percent` is the share of
    the entry's own band kept for its label (the rest holds its descendants).
    """

    entry: Entry
    top: float
    height: float
    left: float
    width: float
    content_width_percent: float
    column_index: int = 0
    column_count: int = 1
    nesting_level: int = 0
    flattened: bool = False

    @property
    def content_width(self) -> float:
        """Absolute row percentage covered by the entry's own content."""
        return self.width * self.content_width_percent / 100


class DragKind(str, Enum):
    CREATE = "create"
    MOVE = "move"
    RESIZE_START = "resize-start"
    RESIZE_END = "resize-end"


@dataclass(frozen=True)
class DragSession:
    """
    The single active pointer gesture.

    Exists only between pointer-down and pointer-up. `entry` is the draft for
    create and the live entry otherwise; `initial` is the pre-drag geometry
    (None for create).
    """

    kind: DragKind
    entry: Entry
    anchor_x: float
    anchor_y: float
    anchor_minutes: int
    initial: GeometrySnapshot | None = None
    initial_top: float = 0.0
    initial_height: float = 0.0
    dragged: bool = False


@dataclass(frozen=True)
class EntryPatch:
    """Changed fields emitted to the entry store when a gesture commits."""

    entry_id: str
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduleSheet:
    """A time-schedule sheet: display settings, lanes and the entries of all its dates."""

    title: str
    settings: WindowSettings = field(default_factory=WindowSettings)
    lanes: list[Lane] = field(default_factory=list)
    entries: list[Entry] = field(default_factory=list)
    dates: list[dt.date] = field(default_factory=list)

    @property
    def sorted_dates(self) -> list[dt.date]:
        """Declared dates, or the distinct entry dates when none are declared."""
        if self.dates:
            return sorted(set(self.dates))
        return sorted({entry.date for entry in self.entries})
