import random
from collections import defaultdict

import pytest

from time_schedule.packing import Interval, max_concurrency, pack_overlaps


def _slots(*intervals):
    return {slot.key: slot for slot in pack_overlaps(intervals)}


def _conflict(a, b):
    if a.is_milestone and b.is_milestone:
        return a.start == b.start
    if a.is_milestone:
        return b.start <= a.start < b.end
    if b.is_milestone:
        return a.start <= b.start < a.end
    return a.start < b.end and b.start < a.end


def test_two_overlapping_entries_share_a_cluster_and_a_third_stands_alone():
    slots = _slots(Interval("A", 540, 600), Interval("B", 570, 660), Interval("C", 720, 780))

    assert (slots["A"].column_index, slots["A"].column_count) == (0, 2)
    assert (slots["B"].column_index, slots["B"].column_count) == (1, 2)
    assert slots["A"].left_percent == 0
    assert slots["B"].left_percent == 50
    assert slots["A"].width_percent == slots["B"].width_percent == 50
    assert slots["C"].column_count == 1
    assert slots["C"].width_percent == 100
    assert slots["A"].cluster_index == slots["B"].cluster_index != slots["C"].cluster_index


def test_longer_interval_anchors_the_first_column_on_equal_starts():
    slots = _slots(Interval("short", 540, 600), Interval("long", 540, 660))
    assert slots["long"].column_index == 0
    assert slots["short"].column_index == 1


def test_touching_intervals_do_not_overlap():
    slots = _slots(Interval("A", 540, 600), Interval("B", 600, 660))
    assert slots["A"].column_count == 1
    assert slots["B"].column_count == 1
    assert slots["A"].cluster_index != slots["B"].cluster_index


def test_bridging_interval_joins_a_cluster_and_first_fit_reuses_columns():
    slots = _slots(Interval("A", 0, 60), Interval("B", 30, 90), Interval("C", 70, 120))
    assert {slot.cluster_index for slot in slots.values()} == {0}
    assert slots["A"].column_index == 0
    assert slots["B"].column_index == 1
    assert slots["C"].column_index == 0
    assert slots["C"].column_count == 2


def test_exact_duplicates_get_separate_columns():
    slots = pack_overlaps([Interval("x", 60, 120), Interval("y", 60, 120)])
    assert [slot.column_index for slot in slots] == [0, 1]
    assert all(slot.column_count == 2 for slot in slots)


def test_milestones_at_the_same_instant_overlap():
    slots = _slots(Interval("m1", 600, 600), Interval("m2", 600, 600))
    assert slots["m1"].column_count == 2
    assert slots["m1"].column_index != slots["m2"].column_index


def test_milestone_inside_an_interval_overlaps():
    slots = _slots(Interval("span", 540, 660), Interval("m", 600, 600))
    assert slots["m"].column_count == 2
    assert slots["m"].column_index == 1


def test_milestone_on_an_interval_end_touches_only():
    slots = _slots(Interval("span", 540, 600), Interval("m", 600, 600))
    assert slots["span"].column_count == 1
    assert slots["m"].column_count == 1


def test_milestone_on_an_interval_start_overlaps():
    slots = _slots(Interval("m", 600, 600), Interval("span", 600, 660))
    assert slots["span"].column_index == 0
    assert slots["m"].column_index == 1


@pytest.mark.parametrize("depth", [1, 2, 3, 5, 8])
def test_column_count_equals_known_overlap_depth(depth):
    intervals = [Interval(i, i * 5, 200 + i * 5) for i in range(depth)]
    # A trailing chain that never exceeds the depth.
    intervals += [Interval(f"tail{i}", 200 + i * 20, 215 + i * 20) for i in range(4)]
    slots = pack_overlaps(intervals)
    assert max(slot.column_count for slot in slots) == depth
    assert max_concurrency(intervals) == depth


def test_packing_is_deterministic():
    intervals = [Interval(i, (i * 37) % 300, (i * 37) % 300 + (i % 4) * 15) for i in range(40)]
    assert pack_overlaps(intervals) == pack_overlaps(list(intervals))


def test_random_clusters_are_non_overlapping_minimal_and_contained():
    rng = random.Random(20240501)
    for _ in range(200):
        intervals = []
        for key in range(rng.randint(1, 25)):
            start = rng.randrange(0, 600, 5)
            intervals.append(Interval(key, start, start + rng.choice([0, 0, 15, 30, 45, 60, 120])))
        by_key = {interval.key: interval for interval in intervals}
        slots = pack_overlaps(intervals)
        assert sorted(slot.key for slot in slots) == sorted(by_key)

        columns = defaultdict(list)
        clusters = defaultdict(list)
        for slot in slots:
            columns[(slot.cluster_index, slot.column_index)].append(by_key[slot.key])
            clusters[slot.cluster_index].append(slot)
            assert slot.left_percent + slot.width_percent <= 100 + 1e-9

        for members in columns.values():
            for i, first in enumerate(members):
                for second in members[i + 1 :]:
                    assert not _conflict(first, second)

        for cluster_slots in clusters.values():
            counts = {slot.column_count for slot in cluster_slots}
            assert len(counts) == 1
            cluster_intervals = [by_key[slot.key] for slot in cluster_slots]
            assert counts.pop() == max_concurrency(cluster_intervals)


def test_empty_input_packs_to_nothing():
    assert pack_overlaps([]) == []
    assert max_concurrency([]) == 0
