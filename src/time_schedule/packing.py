from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable, Iterable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Interval:
    """Sibling interval in window minutes; `start == end` is a milestone."""

    key: Hashable
    start: int
    end: int

    @property
    def is_milestone(self) -> bool:
        return self.start == self.end

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class ColumnSlot:
    """Column assignment of one interval inside its overlap cluster."""

    key: Hashable
    column_index: int
    column_count: int
    cluster_index: int

    @property
    def left_percent(self) -> float:
        return self.column_index / self.column_count * 100

    @property
    def width_percent(self) -> float:
        return 100 / self.column_count


def pack_overlaps(intervals: Iterable[Interval]) -> list[ColumnSlot]:
    """
    Pack sibling intervals into equal-width columns.

    - Sorts by start, longer duration first on ties, then input order.
    - Splits into clusters of transitively overlapping intervals.
    - Assigns columns inside each cluster by greedy first-fit, which opens
      exactly as many columns as the cluster's peak overlap.

    Slots are returned in placement order (cluster by cluster, column by
    column), mirroring how a renderer walks them.
    """

    ordered = _sorted_intervals(intervals)
    slots: list[ColumnSlot] = []
    for cluster_index, cluster in enumerate(_clusters(ordered)):
        columns = _first_fit_columns(cluster)
        count = len(columns)
        logger.debug("cluster %d: %d intervals in %d columns", cluster_index, len(cluster), count)
        for column_index, column in enumerate(columns):
            for interval in column:
                slots.append(ColumnSlot(interval.key, column_index, count, cluster_index))
    return slots


def max_concurrency(intervals: Iterable[Interval]) -> int:
    """Largest number of intervals that pairwise conflict at one instant."""

    events: list[tuple[int, int, int]] = []
    for interval in intervals:
        if interval.is_milestone:
            # Opens before and closes after every boundary at the same instant.
            events.append((interval.start, 1, 1))
            events.append((interval.start, 3, -1))
        else:
            events.append((interval.start, 2, 1))
            events.append((interval.end, 0, -1))
    events.sort()

    current = peak = 0
    for _, _, delta in events:
        current += delta
        peak = max(peak, current)
    return peak


def _sorted_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    indexed = list(enumerate(intervals))
    indexed.sort(key=lambda pair: (pair[1].start, -pair[1].duration, pair[0]))
    return [interval for _, interval in indexed]


def _clusters(ordered: Sequence[Interval]) -> list[list[Interval]]:
    clusters: list[list[Interval]] = []
    watermark = 0
    # A milestone sitting exactly on the watermark still blocks that instant.
    watermark_closed = False

    for interval in ordered:
        joins = clusters and (
            interval.start < watermark or (interval.start == watermark and watermark_closed)
        )
        if joins:
            clusters[-1].append(interval)
            if interval.end > watermark:
                watermark, watermark_closed = interval.end, interval.is_milestone
            elif interval.end == watermark:
                watermark_closed = watermark_closed or interval.is_milestone
        else:
            clusters.append([interval])
            watermark, watermark_closed = interval.end, interval.is_milestone
    return clusters


def _column_is_free(last: Interval, candidate: Interval) -> bool:
    if last.end < candidate.start:
        return True
    return last.end == candidate.start and not last.is_milestone


def _first_fit_columns(cluster: Sequence[Interval]) -> list[list[Interval]]:
    columns: list[list[Interval]] = []
    for interval in cluster:
        for column in columns:
            if _column_is_free(column[-1], interval):
                column.append(interval)
                break
        else:
            columns.append([interval])
    return columns
