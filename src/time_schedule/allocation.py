from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from .packing import Interval, pack_overlaps
from .schedule_models import Entry, EntryLayout, ScheduleError
from .timegrid import TimeGrid

logger = logging.getLogger(__name__)

FULL_BAND = (0.0, 100.0)


class StructuralError(ScheduleError):
    """Raised when the parent graph is cyclic or references an unknown parent."""

    def __init__(self, message: str, entry_ids: Sequence[str] = ()):
        super().__init__(message)
        self.entry_ids: tuple[str, ...] = tuple(entry_ids)


@dataclass(frozen=True)
class Cycle:
    """Detected parent cycle, child first, for error reporting."""

    path: list[str]

    def __str__(self) -> str:
        return " -> ".join(self.path)


ChildIndex = dict[str | None, list[Entry]]


def content_share(max_depth: int) -> float:
    """Percentage of an entry's band kept for its own content."""
    if max_depth == 0:
        return 100.0
    if max_depth == 1:
        return 50.0
    return 100 / 3


def build_child_index(entries: Iterable[Entry]) -> ChildIndex:
    """
    Validate the parent graph and group entries by parent id, keeping input order.

    Raises StructuralError for unknown parents and for parent cycles.
    """

    entry_list = list(entries)
    by_id = {entry.id: entry for entry in entry_list}

    for entry in entry_list:
        if entry.parent_id is not None and entry.parent_id not in by_id:
            raise StructuralError(
                f"Entry '{entry.id}' references unknown parent '{entry.parent_id}'",
                entry_ids=[entry.id],
            )

    cycle = _find_cycle(entry_list, by_id)
    if cycle:
        raise StructuralError(f"Parent cycle detected: {cycle}", entry_ids=cycle.path[:-1])

    children: ChildIndex = {}
    for entry in entry_list:
        children.setdefault(entry.parent_id, []).append(entry)
    return children


def _find_cycle(entries: list[Entry], by_id: dict[str | None, Entry]) -> Cycle | None:
    state: dict[str, str] = {}

    for start in entries:
        if state.get(start.id) is not None:
            continue
        chain: list[str] = []
        positions: dict[str, int] = {}
        node: Entry | None = start
        while node is not None and state.get(node.id) is None:
            state[node.id] = "visiting"
            positions[node.id] = len(chain)
            chain.append(node.id)
            node = by_id.get(node.parent_id) if node.parent_id is not None else None
        if node is not None and state.get(node.id) == "visiting":
            return Cycle(chain[positions[node.id] :] + [node.id])
        for entry_id in chain:
            state[entry_id] = "done"
    return None


def max_descendant_depth(entry_id: str, children: ChildIndex, memo: dict[str, int] | None = None) -> int:
    """
    Length of the longest descendant chain below `entry_id` (0 for a leaf).

    Uses an explicit memo table and work stack, so deep trees neither
    recompute shared subtrees nor hit the recursion limit. A revisit of an
    entry still in progress means the graph is cyclic.
    """

    if memo is None:
        memo = {}
    if entry_id in memo:
        return memo[entry_id]

    in_progress: set[str] = set()
    stack: list[tuple[str, bool]] = [(entry_id, False)]
    while stack:
        node_id, expanded = stack.pop()
        if expanded:
            kids = children.get(node_id, [])
            memo[node_id] = 1 + max(memo[kid.id] for kid in kids) if kids else 0
            in_progress.discard(node_id)
            continue
        if node_id in memo:
            continue
        if node_id in in_progress:
            raise StructuralError(f"Parent cycle detected at '{node_id}'", entry_ids=[node_id])
        in_progress.add(node_id)
        stack.append((node_id, True))
        for kid in children.get(node_id, []):
            if kid.id in in_progress:
                raise StructuralError(f"Parent cycle detected at '{kid.id}'", entry_ids=[kid.id])
            if kid.id not in memo:
                stack.append((kid.id, False))
    return memo[entry_id]


def allocate(entries: Sequence[Entry], grid: TimeGrid) -> list[EntryLayout]:
    """
    Lay out one date's entries (already filtered to a single lane) top-down.

    Each nesting level is packed into columns inside the band its parent
    reserved for descendants. Results come back in pre-order: a parent is
    followed by its descendants before its next sibling.
    """

    if grid.is_degenerate:
        logger.debug("degenerate window %s-%s, empty layout", grid.start_hour, grid.end_hour)
        return []

    children = build_child_index(entries)
    memo: dict[str, int] = {}
    layouts: list[EntryLayout] = []

    # Work items: (layout to emit, descendant band or None).
    stack = list(reversed(_layout_level(None, FULL_BAND, 0, children, memo, grid)))
    while stack:
        layout, band = stack.pop()
        layouts.append(layout)
        if band is not None:
            level = _layout_level(layout.entry.id, band, layout.nesting_level + 1, children, memo, grid)
            stack.extend(reversed(level))
    return layouts


def _layout_level(
    parent_id: str | None,
    band: tuple[float, float],
    level: int,
    children: ChildIndex,
    memo: dict[str, int],
    grid: TimeGrid,
) -> list[tuple[EntryLayout, tuple[float, float] | None]]:
    siblings = children.get(parent_id, [])
    if not siblings:
        return []

    by_id = {entry.id: entry for entry in siblings}
    band_left, band_width = band
    results: list[tuple[EntryLayout, tuple[float, float] | None]] = []

    for slot in pack_overlaps(_interval(entry, grid) for entry in siblings):
        entry = by_id[slot.key]
        left = band_left + band_width * slot.left_percent / 100
        width = band_width * slot.width_percent / 100
        depth = max_descendant_depth(entry.id, children, memo)
        share = content_share(depth)

        layout = EntryLayout(
            entry=entry,
            top=grid.top_of(entry),
            height=grid.display_height_of(entry),
            left=left,
            width=width,
            content_width_percent=share,
            column_index=slot.column_index,
            column_count=slot.column_count,
            nesting_level=level,
        )
        descendant_band = None
        if depth > 0:
            descendant_band = (left + width * share / 100, width * (100 - share) / 100)
        results.append((layout, descendant_band))
    return results


def _interval(entry: Entry, grid: TimeGrid) -> Interval:
    start = grid.offset(entry.start_time)
    end = max(start, grid.end_offset(entry.start_time, entry.end_time))
    return Interval(key=entry.id, start=start, end=end)


def layout_entries(entries: Sequence[Entry], grid: TimeGrid) -> list[EntryLayout]:
    """
    Allocate with a flat fallback.

    When the parent graph is broken, the offending entries and everything
    below them are laid out as unnested roots (flagged `flattened`) instead
    of failing the whole pass.
    """

    originals = {entry.id: entry for entry in entries}
    flattened_ids: set[str] = set()
    working = list(entries)

    while True:
        try:
            layouts = allocate(working, grid)
            break
        except StructuralError as exc:
            offending = _subtree_ids(working, exc.entry_ids)
            if not offending - flattened_ids:
                raise
            logger.warning("%s; rendering %d entries flat", exc, len(offending))
            flattened_ids |= offending
            working = [
                replace(entry, parent_id=None) if entry.id in offending else entry
                for entry in working
            ]

    for layout in layouts:
        if layout.entry.id in flattened_ids:
            layout.entry = originals[layout.entry.id]
            layout.flattened = True
    return layouts


def _subtree_ids(entries: Sequence[Entry], roots: Iterable[str]) -> set[str]:
    found = set(roots)
    changed = True
    while changed:
        changed = False
        for entry in entries:
            if entry.id not in found and entry.parent_id in found:
                found.add(entry.id)
                changed = True
    return found
