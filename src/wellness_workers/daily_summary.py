"""Daily summary aggregation.

One fold over the day's canonical records through a pillar-keyed table of
pure reducers. Pillars without a reducer (stress, measurements, ...) do not
contribute to the daily summary.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from functools import reduce
from typing import Any, Callable

from .fetcher import fetch_records
from .models import CanonicalRecord, DailySummary, NutrientAmount
from .normalizer import normalize_records
from .store import RecordStore
from .temporal import build_day_window, parse_local_date

logger = logging.getLogger(__name__)

DEFAULT_NUTRIENT_UNIT = "g"


def daily_summary_path(client_id: str, day: date) -> str:
    return f"clients/{client_id}/dailySummaries/{day.isoformat()}"


def read_number(value: Any) -> float:
    """Tolerant numeric read: anything non-numeric or non-finite is 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def nutrient_map(summary: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Per-entry nutrient map; newer entries use ``allNutrients``, older ones ``nutrients``."""
    nutrients = summary.get("allNutrients")
    if not isinstance(nutrients, dict):
        nutrients = summary.get("nutrients")
    return nutrients if isinstance(nutrients, dict) else {}


@dataclass(frozen=True)
class DayAccumulator:
    calories: float = 0.0
    upf_calories: float = 0.0
    hydration: float = 0.0
    sleep_hours: float = 0.0
    activity_minutes: float = 0.0
    nutrients: dict[str, NutrientAmount] = field(default_factory=dict)


Reducer = Callable[[DayAccumulator, CanonicalRecord], DayAccumulator]


def _reduce_nutrition(acc: DayAccumulator, record: CanonicalRecord) -> DayAccumulator:
    summary = record.payload.get("summary")
    if not isinstance(summary, dict):
        return acc

    nutrients = dict(acc.nutrients)
    for name, nutrient in nutrient_map(summary).items():
        if not isinstance(nutrient, dict):
            continue
        value = nutrient.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            continue
        current = nutrients.get(name)
        if current is None:
            current = NutrientAmount(value=0.0, unit=nutrient.get("unit") or DEFAULT_NUTRIENT_UNIT)
        nutrients[name] = NutrientAmount(value=current.value + value, unit=current.unit)

    return replace(
        acc,
        calories=acc.calories + read_number(summary.get("totalMealCalories")),
        upf_calories=acc.upf_calories + read_number(summary.get("totalMealUpfCalories")),
        nutrients=nutrients,
    )


def _reduce_hydration(acc: DayAccumulator, record: CanonicalRecord) -> DayAccumulator:
    return replace(acc, hydration=acc.hydration + read_number(record.payload.get("amount")))


def _reduce_sleep(acc: DayAccumulator, record: CanonicalRecord) -> DayAccumulator:
    if record.payload.get("isNap") is True:
        return acc
    return replace(acc, sleep_hours=acc.sleep_hours + read_number(record.payload.get("duration")))


def activity_minutes(payload: dict[str, Any]) -> float:
    minutes = read_number(payload.get("durationInMinutes"))
    return minutes or read_number(payload.get("duration"))


def _reduce_activity(acc: DayAccumulator, record: CanonicalRecord) -> DayAccumulator:
    return replace(acc, activity_minutes=acc.activity_minutes + activity_minutes(record.payload))


DAILY_REDUCERS: dict[str, Reducer] = {
    "nutrition": _reduce_nutrition,
    "hydration": _reduce_hydration,
    "sleep": _reduce_sleep,
    "activity": _reduce_activity,
}


def _step(acc: DayAccumulator, record: CanonicalRecord) -> DayAccumulator:
    reducer = DAILY_REDUCERS.get(record.pillar)
    return reducer(acc, record) if reducer else acc


def upf_percentage(calories: float, upf_calories: float) -> float:
    """Share of calories from ultra-processed food, 0 when there are no calories."""
    if calories <= 0:
        return 0.0
    return min(max(100.0 * upf_calories / calories, 0.0), 100.0)


def summarize_day(records: list[CanonicalRecord], day: date) -> DailySummary:
    """Fold one day's canonical records into a DailySummary."""
    acc = reduce(_step, records, DayAccumulator())
    return DailySummary(
        date=day,
        calories=round_half_up(acc.calories),
        upf_percentage=round_half_up(upf_percentage(acc.calories, acc.upf_calories)),
        hydration_amount=round_half_up(acc.hydration),
        sleep_hours=round_half_up(acc.sleep_hours),
        activity_minutes=round_half_up(acc.activity_minutes),
        nutrients=acc.nutrients,
    )


async def compute_daily_summary(
    store: RecordStore,
    client_id: str,
    local_date: date | str,
    timezone_name: str | None,
    timezone_offset_minutes: float | None,
    *,
    persist: bool = True,
) -> DailySummary:
    """Fetch, normalize and aggregate one local day, then write the cache document."""
    day = parse_local_date(local_date)
    window = build_day_window(day, timezone_name, timezone_offset_minutes)
    raw = await fetch_records(store, client_id, window)
    records = normalize_records(raw, window)

    summary = summarize_day(records, day).model_copy(
        update={"last_calculated": datetime.now(timezone.utc)}
    )
    if persist:
        await store.set(daily_summary_path(client_id, day), summary.to_document(), merge=True)

    logger.info(
        "Updated daily summary for client=%s date=%s (records=%d, calories=%d, upf=%d%%)",
        client_id,
        day.isoformat(),
        len(records),
        summary.calories,
        summary.upf_percentage,
    )
    return summary
