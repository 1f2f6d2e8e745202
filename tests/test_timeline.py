"""Tests for the 24-hour timeline layout."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st

from wellness_workers.models import CanonicalRecord
from wellness_workers.timeline import (
    MIN_HEIGHT_PERCENT,
    TimedRecord,
    cluster_intervals,
    hour_ruler,
    layout_day,
    pack_columns,
    record_interval,
    sort_timed,
)

DAY_START = datetime(2024, 3, 10, tzinfo=timezone.utc)


def _at(minute: int) -> datetime:
    return DAY_START + timedelta(minutes=minute)


def _record(record_id, pillar, minute, payload=None, ends_at=None):
    return CanonicalRecord(
        id=record_id,
        pillar=pillar,
        occurs_at=_at(minute),
        title="t",
        payload=payload or {},
        ends_at=ends_at,
    )


class TestRecordInterval:
    def test_fixed_blocks(self):
        assert record_interval(_record("n", "nutrition", 600), DAY_START) == TimedRecord("n", 600, 630)
        assert record_interval(_record("p", "planner", 600), DAY_START) == TimedRecord("p", 600, 615)

    def test_activity_default_duration(self):
        assert record_interval(_record("a", "activity", 60), DAY_START).end == 75
        assert record_interval(_record("a", "activity", 60, {"duration": 0}), DAY_START).end == 75
        assert record_interval(_record("a", "activity", 60, {"duration": 45}), DAY_START).end == 105

    def test_sleep_starts_at_bedtime_and_is_clamped(self):
        record = _record("s", "sleep", 7 * 60, {
            "entryDate": (DAY_START - timedelta(hours=1)).isoformat(),
            "duration": 8,
        })
        assert record_interval(record, DAY_START) == TimedRecord("s", 0, 420)

    def test_explicit_end_required(self):
        assert record_interval(_record("e", "appointment", 60), DAY_START) is None
        timed = record_interval(_record("e", "appointment", 60, ends_at=_at(120)), DAY_START)
        assert timed == TimedRecord("e", 60, 120)

    def test_clamped_to_end_of_day(self):
        assert record_interval(_record("n", "nutrition", 1430), DAY_START) == TimedRecord("n", 1430, 1440)

    def test_empty_interval_is_dropped(self):
        record = _record("e", "live-event", 60, ends_at=_at(60))
        assert record_interval(record, DAY_START) is None

    @pytest.mark.parametrize("duration", [float("inf"), float("nan"), 1e12, -1e12])
    def test_activity_duration_out_of_range(self, duration):
        timed = record_interval(_record("a", "activity", 60, {"duration": duration}), DAY_START)
        assert timed is None or timed.end <= 1440

    def test_huge_activity_fills_rest_of_day(self):
        timed = record_interval(_record("a", "activity", 60, {"duration": 1e12}), DAY_START)
        assert timed == TimedRecord("a", 60, 1440)

    @pytest.mark.parametrize("duration", [float("inf"), 1e10])
    def test_huge_sleep_is_clamped(self, duration):
        record = _record("s", "sleep", 7 * 60, {
            "entryDate": (DAY_START - timedelta(hours=1)).isoformat(),
            "duration": duration,
        })
        timed = record_interval(record, DAY_START)
        if duration == float("inf"):
            # Non-finite durations read as zero, like the daily aggregator.
            assert timed is None
        else:
            assert timed == TimedRecord("s", 0, 1440)

    def test_numeric_string_duration_read_like_aggregator(self):
        record = _record("s", "sleep", 7 * 60, {
            "entryDate": (DAY_START - timedelta(hours=1)).isoformat(),
            "duration": "8",
        })
        assert record_interval(record, DAY_START) == TimedRecord("s", 0, 420)
        activity = _record("a", "activity", 60, {"duration": "45"})
        assert record_interval(activity, DAY_START) == TimedRecord("a", 60, 105)

    def test_layout_survives_extreme_durations(self):
        records = [
            _record("s", "sleep", 420, {"entryDate": DAY_START.isoformat(), "duration": float("inf")}),
            _record("a", "activity", 60, {"duration": 1e12}),
            _record("n", "nutrition", 600),
        ]
        layout = {p.record_id: p for p in layout_day(records, DAY_START)}
        assert set(layout) == {"a", "n"}
        assert layout["a"].top + layout["a"].height <= 100 + 1e-9


class TestLayoutDay:
    def test_same_start_activities_split_width(self):
        records = [
            _record("short", "activity", 60, {"duration": 30}),
            _record("long", "activity", 60, {"duration": 45}),
        ]
        layout = {p.record_id: p for p in layout_day(records, DAY_START)}

        assert layout["short"].width == 50
        assert layout["long"].width == 50
        assert {layout["short"].left, layout["long"].left} == {0, 50}
        # Longer record takes the first column.
        assert layout["long"].left == 0

    def test_touching_records_share_a_column(self):
        records = [
            _record("a", "nutrition", 0),
            _record("b", "nutrition", 30),
        ]
        layout = layout_day(records, DAY_START)
        assert [p.width for p in layout] == [100, 100]
        assert [p.left for p in layout] == [0, 0]

    def test_separate_clusters_are_full_width(self):
        records = [
            _record("a", "activity", 60, {"duration": 30}),
            _record("b", "activity", 60, {"duration": 30}),
            _record("c", "nutrition", 600),
        ]
        layout = {p.record_id: p for p in layout_day(records, DAY_START)}
        assert layout["c"].width == 100
        assert layout["a"].width == 50

    def test_minimum_height(self):
        layout = layout_day([_record("a", "activity", 60, {"duration": 1})], DAY_START)
        assert layout[0].height == MIN_HEIGHT_PERCENT
        assert layout[0].top == pytest.approx(60 / 1440 * 100)

    def test_records_without_interval_are_not_positioned(self):
        assert layout_day([_record("e", "appointment", 60)], DAY_START) == []

    def test_hour_ruler(self):
        assert hour_ruler() == list(range(24))


class TestClustering:
    def test_unsorted_input_can_split_components(self):
        a, b, c = TimedRecord("a", 0, 10), TimedRecord("b", 20, 30), TimedRecord("c", 5, 25)
        assert len(cluster_intervals([a, b, c])) == 2
        assert len(cluster_intervals(sort_timed([a, b, c]))) == 1


def _components(timed: list[TimedRecord]) -> set[frozenset[int]]:
    parent = list(range(len(timed)))

    def find(i: int) -> int:
        while parent[i] != i:
            i = parent[i]
        return i

    for i, x in enumerate(timed):
        for j, y in enumerate(timed):
            if x.start <= y.end and x.end >= y.start:
                parent[find(i)] = find(j)
    groups: dict[int, set[int]] = {}
    for i in range(len(timed)):
        groups.setdefault(find(i), set()).add(i)
    return {frozenset(g) for g in groups.values()}


_intervals = st.lists(
    st.tuples(st.integers(min_value=0, max_value=1400), st.integers(min_value=1, max_value=240)),
    max_size=20,
).map(lambda pairs: [
    TimedRecord(f"r{i}", start, min(start + length, 1440)) for i, (start, length) in enumerate(pairs)
])


class TestLayoutProperties:
    @given(_intervals)
    def test_sorted_clusters_are_connected_components(self, timed):
        ordered = sort_timed(timed)
        index = {id(t): i for i, t in enumerate(ordered)}
        clusters = {frozenset(index[id(t)] for t in cluster) for cluster in cluster_intervals(ordered)}
        assert clusters == _components(ordered)

    @given(_intervals)
    def test_columns_never_overlap(self, timed):
        for cluster in cluster_intervals(sort_timed(timed)):
            for column in pack_columns(cluster):
                for earlier, later in zip(column, column[1:]):
                    assert earlier.end <= later.start

    @given(_intervals)
    def test_every_record_positioned_within_bounds(self, timed):
        records = [_record(t.record_id, "live-event", t.start, ends_at=_at(t.end)) for t in timed]
        layout = layout_day(records, DAY_START)
        assert sorted(p.record_id for p in layout) == sorted(t.record_id for t in timed)
        for p in layout:
            assert p.height >= MIN_HEIGHT_PERCENT
            assert 0 <= p.left < 100
            assert p.left + p.width <= 100 + 1e-9
