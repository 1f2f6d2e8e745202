"""24-hour timeline layout.

Turns a day's canonical records into non-overlapping rectangles expressed
in percent of the day (vertical) and of the overlap cluster width
(horizontal).

Clustering is a single greedy pass over records sorted by start. With that
ordering any record touching two existing clusters would have to overlap
members of both at its own start minute, which would already have merged
them, so the pass yields the connected components. Fed unsorted input,
cluster_intervals can leave transitively connected clusters apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .daily_summary import read_number
from .models import CanonicalRecord, PositionedRecord
from .pillars import get_pillar
from .temporal import parse_instant

MINUTES_PER_DAY = 24 * 60
MIN_HEIGHT_PERCENT = 2.0833
DEFAULT_ACTIVITY_MINUTES = 15
PLANNER_BLOCK_MINUTES = 15
DEFAULT_BLOCK_MINUTES = 30
# Anything longer already spans the whole day from any start inside it.
MAX_DURATION_MINUTES = 2 * MINUTES_PER_DAY


@dataclass(frozen=True)
class TimedRecord:
    record_id: str
    start: int
    end: int


def _minutes_since(day_start: datetime, instant: datetime) -> float:
    return (instant - day_start).total_seconds() / 60


def _duration_minutes(value: object, *, scale: float = 1.0) -> float:
    """Stored duration converted to minutes, read like the aggregators read it and capped."""
    minutes = read_number(value) * scale
    return min(max(minutes, -MAX_DURATION_MINUTES), MAX_DURATION_MINUTES)


def record_interval(record: CanonicalRecord, day_start: datetime) -> TimedRecord | None:
    """Minutes since local midnight for a record, clamped to the day; None if empty."""
    spec = get_pillar(record.pillar)
    payload = record.payload
    rule = spec.duration_rule
    start = _minutes_since(day_start, record.occurs_at)

    if rule == "sleep_hours":
        # Sleep is drawn from bedtime, not from the wake-up attribution instant.
        bedtime = parse_instant(payload.get("entryDate"))
        if bedtime is not None:
            start = _minutes_since(day_start, bedtime)
        end = start + _duration_minutes(payload.get("duration"), scale=60)
    elif rule == "activity_minutes":
        end = start + (_duration_minutes(payload.get("duration")) or DEFAULT_ACTIVITY_MINUTES)
    elif rule == "explicit_end":
        if record.ends_at is None:
            return None
        end = _minutes_since(day_start, record.ends_at)
    elif rule == "fixed_15":
        end = start + PLANNER_BLOCK_MINUTES
    else:
        end = start + DEFAULT_BLOCK_MINUTES

    # Truncates toward zero, like a whole-minute difference.
    start_minutes = max(0, int(start))
    end_minutes = min(MINUTES_PER_DAY, int(end))
    if end_minutes <= start_minutes:
        return None
    return TimedRecord(record_id=record.id, start=start_minutes, end=end_minutes)


def _intersects(a: TimedRecord, b: TimedRecord) -> bool:
    return a.start <= b.end and a.end >= b.start


def cluster_intervals(timed: list[TimedRecord]) -> list[list[TimedRecord]]:
    """Greedy single pass: join the first cluster with any intersecting member."""
    clusters: list[list[TimedRecord]] = []
    for item in timed:
        for cluster in clusters:
            if any(_intersects(item, other) for other in cluster):
                cluster.append(item)
                break
        else:
            clusters.append([item])
    return clusters


def pack_columns(cluster: list[TimedRecord]) -> list[list[TimedRecord]]:
    """First-fit packing: a column accepts a record once its last record has ended."""
    columns: list[list[TimedRecord]] = []
    for item in cluster:
        for column in columns:
            if column[-1].end <= item.start:
                column.append(item)
                break
        else:
            columns.append([item])
    return columns


def sort_timed(timed: list[TimedRecord]) -> list[TimedRecord]:
    """Start ascending, longer records first among equal starts."""
    return sorted(timed, key=lambda t: (t.start, -t.end))


def layout_day(records: list[CanonicalRecord], day_start: datetime) -> list[PositionedRecord]:
    """Assign every record with a non-empty interval a rectangle on the day's timeline."""
    timed = [t for r in records if (t := record_interval(r, day_start)) is not None]
    ordered = sort_timed(timed)

    positioned: list[PositionedRecord] = []
    for cluster in cluster_intervals(ordered):
        columns = pack_columns(cluster)
        width = 100 / len(columns)
        column_of = {id(item): index for index, column in enumerate(columns) for item in column}
        for item in cluster:
            duration = item.end - item.start
            positioned.append(PositionedRecord(
                record_id=item.record_id,
                top=item.start / MINUTES_PER_DAY * 100,
                height=max(duration / MINUTES_PER_DAY * 100, MIN_HEIGHT_PERCENT),
                left=column_of[id(item)] * width,
                width=width,
            ))
    return positioned


def hour_ruler() -> list[int]:
    return list(range(24))
