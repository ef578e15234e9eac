from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from .allocation import layout_entries
from .schedule_models import (
    DEFAULT_LANE_COLOR,
    UNCATEGORIZED_LANE_ID,
    Entry,
    EntryLayout,
    EntryValidationError,
    Lane,
    WindowSettings,
)
from .store import EntryStore
from .timegrid import TimeGrid, parse_time, snap

logger = logging.getLogger(__name__)

UNCATEGORIZED_LANE_NAME = "Schedule"


@dataclass
class DayLayout:
    """Everything a renderer needs for one date: geometry, lanes and per-lane entry layouts."""

    date: dt.date
    grid: TimeGrid
    lanes: list[Lane]
    entries: dict[str | None, list[EntryLayout]] = field(default_factory=dict)

    def lane_entries(self, lane_id: str | None) -> list[EntryLayout]:
        return self.entries.get(lane_id, [])

    def find(self, entry_id: str) -> EntryLayout | None:
        for layouts in self.entries.values():
            for layout in layouts:
                if layout.entry.id == entry_id:
                    return layout
        return None


def display_lanes(lanes: Iterable[Lane], settings: WindowSettings) -> list[Lane]:
    """
    Lanes in display order.

    The synthetic uncategorized lane (id None) comes first unless hidden;
    when no persisted lane is visible it is the only lane.
    """

    hidden = settings.hidden_lane_ids
    visible = sorted((lane for lane in lanes if lane.id not in hidden), key=lambda lane: lane.order)
    if UNCATEGORIZED_LANE_ID in hidden:
        return visible
    uncategorized = Lane(id=None, name=UNCATEGORIZED_LANE_NAME, order=-1, color=DEFAULT_LANE_COLOR)
    return [uncategorized, *visible]


def entries_for_date(entries: Iterable[Entry], date: dt.date) -> list[Entry]:
    return [entry for entry in entries if entry.date == date]


def layout_day(
    entries: Iterable[Entry],
    lanes: Iterable[Lane],
    settings: WindowSettings,
    date: dt.date,
) -> DayLayout:
    """
    Full layout pass for one date; always recomputed from scratch.

    Each display lane is packed on its own. A child whose parent sits in a
    different lane is laid out as a root of its own lane.
    """

    grid = TimeGrid.from_settings(settings)
    shown = display_lanes(lanes, settings)
    day = DayLayout(date=date, grid=grid, lanes=shown)
    if grid.is_degenerate:
        logger.debug("degenerate window for %s, empty layout", date)
        return day

    todays = entries_for_date(entries, date)
    for lane in shown:
        in_lane = [entry for entry in todays if entry.lane_id == lane.id]
        day.entries[lane.id] = _layout_lane(in_lane, todays, grid)
    return day


def _layout_lane(in_lane: list[Entry], todays: list[Entry], grid: TimeGrid) -> list[EntryLayout]:
    lane_ids = {entry.id for entry in in_lane}
    today_ids = {entry.id for entry in todays}
    originals = {entry.id: entry for entry in in_lane}

    working = []
    for entry in in_lane:
        if entry.parent_id is not None and entry.parent_id not in lane_ids and entry.parent_id in today_ids:
            logger.debug("entry %s detached from parent %s in another lane", entry.id, entry.parent_id)
            entry = replace(entry, parent_id=None)
        working.append(entry)

    layouts = layout_entries(working, grid)
    for layout in layouts:
        layout.entry = originals[layout.entry.id]
    return layouts


def collect_subtree(entries: Iterable[Entry], entry_id: str) -> list[str]:
    """Ids of an entry and all its descendants, parents before children."""

    entry_list = list(entries)
    found = [entry_id]
    seen = {entry_id}
    index = 0
    while index < len(found):
        current = found[index]
        for entry in entry_list:
            if entry.parent_id == current and entry.id not in seen:
                seen.add(entry.id)
                found.append(entry.id)
        index += 1
    return found


def delete_entry(store: EntryStore, entries: Iterable[Entry], entry_id: str) -> list[str]:
    """Delete an entry together with its sub-items; returns the deleted ids."""
    doomed = collect_subtree(entries, entry_id)
    for doomed_id in doomed:
        store.delete(doomed_id)
    logger.debug("deleted %d entries under %s", len(doomed), entry_id)
    return doomed


def draft_sub_entry(parent: Entry) -> Entry:
    """New child draft prefilled from its parent."""
    return Entry(
        id=None,
        date=parent.date,
        start_time=parent.start_time,
        end_time=parent.end_time,
        lane_id=parent.lane_id,
        parent_id=parent.id,
        depth=parent.depth + 1,
        color=parent.color,
        location=parent.location,
    )


def draft_at(now: dt.datetime, grid_minutes: int, date: dt.date) -> Entry:
    """Quick-add draft: `now` rounded to the grid, lasting one hour."""
    start = now.replace(minute=0, second=0, microsecond=0) + dt.timedelta(minutes=snap(now.minute, grid_minutes))
    end = start + dt.timedelta(hours=1)
    return Entry(id=None, date=date, start_time=start.strftime("%H:%M"), end_time=end.strftime("%H:%M"))


def reassign_lane(entry: Entry, lanes: Sequence[Lane], lane_id: str | None) -> Entry:
    """Move an edited entry to another lane; its colour follows unless customised."""
    old_color = _lane_color(lanes, entry.lane_id)
    new_color = _lane_color(lanes, lane_id)
    color = new_color if entry.color in ("", old_color) else entry.color
    return replace(entry, lane_id=lane_id, color=color)


def _lane_color(lanes: Sequence[Lane], lane_id: str | None) -> str:
    for lane in lanes:
        if lane.id == lane_id:
            return lane.color
    return DEFAULT_LANE_COLOR


def submit_entry(store: EntryStore, draft: Entry, lanes: Sequence[Lane] = ()) -> str:
    """
    Save an entry from the editor.

    A zero-duration draft is saved as a milestone only through this explicit
    path. End times before the start are rejected, except an end of 00:00
    (midnight closes the day).
    """

    if not draft.title.strip():
        raise EntryValidationError("title is required")
    if draft.date is None:
        raise EntryValidationError("date is required")
    try:
        start = parse_time(draft.start_time)
        end = parse_time(draft.end_time)
    except ValueError as exc:
        raise EntryValidationError(str(exc)) from exc
    if end < start and draft.end_time != "00:00":
        raise EntryValidationError(f"end {draft.end_time} precedes start {draft.start_time}")

    if draft.id is not None:
        fields = {
            "date": draft.date,
            "start_time": draft.start_time,
            "end_time": draft.end_time,
            "lane_id": draft.lane_id,
            "title": draft.title,
            "description": draft.description,
            "location": draft.location,
        }
        if draft.color:
            fields["color"] = draft.color
        store.update(draft.id, fields)
        return draft.id

    if not draft.color:
        draft = replace(draft, color=_lane_color(lanes, draft.lane_id))
    return store.create(draft)
