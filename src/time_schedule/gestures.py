from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable

from .day_view import DayLayout, display_lanes, layout_day
from .schedule_models import (
    DragKind,
    DragSession,
    Entry,
    EntryPatch,
    GeometrySnapshot,
    Lane,
    StoreError,
    WindowSettings,
)
from .store import EntryStore
from .timegrid import TimeGrid

logger = logging.getLogger(__name__)

DRAG_THRESHOLD_PX = 5.0
TIME_AXIS_WIDTH_PX = 60.0
MIN_LANE_WIDTH_PX = 200.0


@dataclass(frozen=True)
class LaneGeometry:
    """Horizontal hit-testing: a time axis followed by equal-width lanes."""

    lanes: tuple[Lane, ...]
    width: float
    axis_width: float = TIME_AXIS_WIDTH_PX

    def lane_at(self, x: float) -> Lane:
        lane_width = (self.width - self.axis_width) / len(self.lanes)
        if lane_width <= 0:
            return self.lanes[0]
        index = math.floor((x - self.axis_width) / lane_width)
        return self.lanes[max(0, min(index, len(self.lanes) - 1))]

    def lane_index(self, lane_id: str | None) -> int:
        for index, lane in enumerate(self.lanes):
            if lane.id == lane_id:
                return index
        return 0


class ReleaseAction(str, Enum):
    NONE = "none"
    OPEN_EDITOR = "open-editor"
    COMMIT = "commit"


@dataclass(frozen=True)
class Release:
    """Outcome of pointer-up: what the UI should do next."""

    action: ReleaseAction
    entry: Entry | None = None
    patch: EntryPatch | None = None
    error: StoreError | None = None


def begin_create(grid: TimeGrid, geometry: LaneGeometry, date: dt.date, x: float, y: float) -> DragSession:
    minutes = grid.minutes_at(y)
    time = grid.time_at(minutes)
    lane = geometry.lane_at(x)
    draft = Entry(id=None, date=date, start_time=time, end_time=time, lane_id=lane.id, color=lane.color)
    return DragSession(kind=DragKind.CREATE, entry=draft, anchor_x=x, anchor_y=y, anchor_minutes=minutes)


def begin_move(entry: Entry, grid: TimeGrid, x: float, y: float) -> DragSession:
    return _begin_edit(DragKind.MOVE, entry, grid, x, y)


def begin_resize(entry: Entry, grid: TimeGrid, x: float, y: float, edge: DragKind) -> DragSession:
    if edge not in (DragKind.RESIZE_START, DragKind.RESIZE_END):
        raise ValueError(f"not a resize edge: {edge}")
    return _begin_edit(edge, entry, grid, x, y)


def _begin_edit(kind: DragKind, entry: Entry, grid: TimeGrid, x: float, y: float) -> DragSession:
    return DragSession(
        kind=kind,
        entry=entry,
        anchor_x=x,
        anchor_y=y,
        anchor_minutes=grid.minutes_at(y),
        initial=entry.snapshot(),
        initial_top=grid.top_of(entry),
        initial_height=grid.raw_height_of(entry),
    )


def update_drag(
    session: DragSession, grid: TimeGrid, geometry: LaneGeometry, x: float, y: float
) -> tuple[DragSession, Entry]:
    """
    Apply one pointer move; returns the new session and the live entry.

    Every produced interval is grid aligned and at least one grid step long
    for resizes; out-of-range pointer positions are clamped, never rejected.
    """

    dragged = session.dragged or math.hypot(x - session.anchor_x, y - session.anchor_y) > DRAG_THRESHOLD_PX
    current = grid.minutes_at(y)
    entry = session.entry

    if session.kind is DragKind.CREATE:
        start, end = min(session.anchor_minutes, current), max(session.anchor_minutes, current)
        entry = replace(entry, start_time=grid.time_at(start), end_time=grid.time_at(end))

    elif session.kind is DragKind.MOVE:
        initial = session.initial
        duration = grid.end_offset(initial.start_time, initial.end_time) - grid.offset(initial.start_time)
        top = session.initial_top + (y - session.anchor_y)
        top = max(0.0, min(top, grid.total_height - session.initial_height))
        start = grid.snap(grid.to_minutes(top))
        lane = geometry.lane_at(x)
        entry = replace(
            entry,
            start_time=grid.time_at(start),
            end_time=grid.time_at(start + duration),
            lane_id=lane.id,
            color=lane.color,
        )

    elif session.kind is DragKind.RESIZE_END:
        start = grid.offset(session.initial.start_time)
        end = max(current, start + grid.grid_minutes)
        entry = replace(entry, end_time=grid.time_at(end))

    elif session.kind is DragKind.RESIZE_START:
        end = grid.end_offset(session.initial.start_time, session.initial.end_time)
        start = max(0, min(current, end - grid.grid_minutes))
        entry = replace(entry, start_time=grid.time_at(start))

    return replace(session, entry=entry, dragged=dragged), entry


def release_drag(session: DragSession) -> Release:
    """
    Decide the outcome of pointer-up for a finished session.

    A create with zero duration commits nothing; the draft is handed back so
    the caller may offer it as a milestone through the editor. A move or
    resize that never crossed the drag threshold is a click and opens the
    editor on the unchanged entry.
    """

    entry = session.entry
    if session.kind is DragKind.CREATE:
        if entry.is_milestone:
            return Release(ReleaseAction.NONE, entry=entry)
        return Release(ReleaseAction.OPEN_EDITOR, entry=entry)

    if not session.dragged:
        return Release(ReleaseAction.OPEN_EDITOR, entry=entry.restored(session.initial))

    fields = changed_fields(session.initial, entry.snapshot())
    if not fields:
        return Release(ReleaseAction.NONE, entry=entry)
    return Release(ReleaseAction.COMMIT, entry=entry, patch=EntryPatch(entry_id=entry.id, fields=fields))


def changed_fields(before: GeometrySnapshot, after: GeometrySnapshot) -> dict[str, object]:
    fields: dict[str, object] = {}
    for name in ("start_time", "end_time", "lane_id", "color"):
        if getattr(before, name) != getattr(after, name):
            fields[name] = getattr(after, name)
    return fields


class GestureController:
    """
    Owns the in-memory entry list and the single optional drag session.

    The controller is the only writer of its entries while a drag is active;
    layouts are recomputed from those entries on demand. Commits go to the
    entry store once, on pointer-up.
    """

    def __init__(
        self,
        store: EntryStore,
        lanes: Iterable[Lane],
        settings: WindowSettings,
        entries: Iterable[Entry] = (),
        width: float | None = None,
    ):
        self.store = store
        self.settings = settings
        self.lanes = list(lanes)
        self.entries: list[Entry] = list(entries)
        self.grid = TimeGrid.from_settings(settings)
        shown = display_lanes(self.lanes, settings)
        if not shown:
            raise ValueError("at least one lane must be visible")
        if width is None:
            width = TIME_AXIS_WIDTH_PX + MIN_LANE_WIDTH_PX * len(shown)
        self.geometry = LaneGeometry(lanes=tuple(shown), width=width)
        self.session: DragSession | None = None

    @property
    def active(self) -> bool:
        return self.session is not None

    def layout(self, date: dt.date) -> DayLayout:
        return layout_day(self.entries, self.lanes, self.settings, date)

    def find(self, entry_id: str) -> Entry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def pointer_down_grid(self, date: dt.date, x: float, y: float) -> DragSession | None:
        if self._busy():
            return None
        self.session = begin_create(self.grid, self.geometry, date, x, y)
        logger.debug("create drag at %s", self.session.entry.start_time)
        return self.session

    def pointer_down_entry(
        self, entry_id: str, x: float, y: float, kind: DragKind = DragKind.MOVE
    ) -> DragSession | None:
        if self._busy():
            return None
        entry = self.find(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        if kind is DragKind.MOVE:
            self.session = begin_move(entry, self.grid, x, y)
        else:
            self.session = begin_resize(entry, self.grid, x, y, kind)
        logger.debug("%s drag on %s", kind.value, entry_id)
        return self.session

    def pointer_move(self, x: float, y: float) -> Entry | None:
        if self.session is None:
            return None
        self.session, entry = update_drag(self.session, self.grid, self.geometry, x, y)
        if self.session.kind is not DragKind.CREATE:
            self._put(entry)
        return entry

    def pointer_up(self) -> Release:
        session, self.session = self.session, None
        if session is None:
            return Release(ReleaseAction.NONE)

        release = release_drag(session)
        if session.kind is DragKind.CREATE:
            return release

        if release.action is ReleaseAction.OPEN_EDITOR:
            self._put(release.entry)
        elif release.action is ReleaseAction.COMMIT:
            try:
                self.store.update(release.patch.entry_id, release.patch.fields)
            except StoreError as exc:
                reverted = session.entry.restored(session.initial)
                self._put(reverted)
                logger.warning("commit of %s failed, reverted: %s", reverted.id, exc)
                return replace(release, entry=reverted, error=exc)
        return release

    def ghost(self) -> tuple[float, float, float, float] | None:
        """(top, height, left%, width%) of the create-drag preview, if one is visible."""
        session = self.session
        if session is None or session.kind is not DragKind.CREATE or session.entry.is_milestone:
            return None
        count = len(self.geometry.lanes)
        index = self.geometry.lane_index(session.entry.lane_id)
        return (
            self.grid.top_of(session.entry),
            self.grid.raw_height_of(session.entry),
            100 / count * index,
            100 / count,
        )

    def _busy(self) -> bool:
        if self.session is not None:
            logger.debug("pointer-down ignored, %s drag in progress", self.session.kind.value)
            return True
        return False

    def _put(self, updated: Entry) -> None:
        self.entries = [updated if entry.id == updated.id else entry for entry in self.entries]
