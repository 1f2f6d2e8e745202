"""Rolling N-day client summary.

Reuses the fetch/normalize pipeline over a period window and folds the
records through pillar-keyed reducers, like the daily summary. Weight and
waist trends come from the full measurements history.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from functools import reduce
from typing import Any, Callable

from .daily_summary import activity_minutes, nutrient_map, read_number
from .errors import InvalidInputError
from .fetcher import fetch_collection, fetch_records
from .models import CanonicalRecord, ClientSummary
from .normalizer import normalize_all, normalize_records
from .store import RecordStore
from .temporal import (
    build_period_window,
    local_date_of,
    parse_instant,
    resolve_timezone_context,
)

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 7
BINGE_RECENCY = timedelta(hours=24)
HISTORY_START = datetime(1970, 1, 1, tzinfo=timezone.utc)

HEADLINE_NUTRIENTS: tuple[str, ...] = (
    "Energy",
    "Protein",
    "Total lipid (fat)",
    "Carbohydrate, by difference",
)


def client_path(client_id: str) -> str:
    return f"clients/{client_id}"


@dataclass(frozen=True)
class PeriodAccumulator:
    offset_minutes: float = 0.0
    sleep_hours: float = 0.0
    sleep_days: frozenset[date] = frozenset()
    activity_minutes: float = 0.0
    hydration: float = 0.0
    hydration_days: frozenset[date] = frozenset()
    upf_total: float = 0.0
    upf_meals: int = 0
    nutrient_totals: dict[str, float] = field(default_factory=dict)
    cravings: int = 0
    binges: int = 0
    stress_events: int = 0
    binge_times: tuple[datetime, ...] = ()

    def local_day(self, record: CanonicalRecord) -> date:
        return local_date_of(record.occurs_at, self.offset_minutes)


PeriodReducer = Callable[[PeriodAccumulator, CanonicalRecord], PeriodAccumulator]


def meal_upf_score(summary: dict[str, Any]) -> float | None:
    """UPF score of a meal: stored ``upf.score``, else derived from the calorie totals."""
    upf = summary.get("upf")
    if isinstance(upf, dict):
        score = upf.get("score")
        if isinstance(score, (int, float)) and not isinstance(score, bool) and math.isfinite(score):
            return float(score)
    calories = read_number(summary.get("totalMealCalories"))
    if calories > 0:
        return 100.0 * read_number(summary.get("totalMealUpfCalories")) / calories
    return None


def _reduce_nutrition(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    summary = record.payload.get("summary")
    if not isinstance(summary, dict):
        return acc

    totals = dict(acc.nutrient_totals)
    for name, nutrient in nutrient_map(summary).items():
        if isinstance(nutrient, dict):
            value = nutrient.get("value")
            if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
                totals[name] = totals.get(name, 0.0) + value

    score = meal_upf_score(summary)
    if score is None:
        return replace(acc, nutrient_totals=totals)
    return replace(
        acc,
        nutrient_totals=totals,
        upf_total=acc.upf_total + score,
        upf_meals=acc.upf_meals + 1,
    )


def _reduce_sleep(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    if record.payload.get("isNap") is True:
        return acc
    return replace(
        acc,
        sleep_hours=acc.sleep_hours + read_number(record.payload.get("duration")),
        sleep_days=acc.sleep_days | {acc.local_day(record)},
    )


def _reduce_activity(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    return replace(acc, activity_minutes=acc.activity_minutes + activity_minutes(record.payload))


def _reduce_hydration(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    return replace(
        acc,
        hydration=acc.hydration + read_number(record.payload.get("amount")),
        hydration_days=acc.hydration_days | {acc.local_day(record)},
    )


def _reduce_cravings(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    kind = record.payload.get("type")
    if kind == "binge":
        return replace(
            acc,
            binges=acc.binges + 1,
            binge_times=acc.binge_times + (record.occurs_at,),
        )
    if kind == "craving":
        return replace(acc, cravings=acc.cravings + 1)
    return acc


def _reduce_stress(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    if record.payload.get("type") == "event":
        return replace(acc, stress_events=acc.stress_events + 1)
    return acc


PERIOD_REDUCERS: dict[str, PeriodReducer] = {
    "nutrition": _reduce_nutrition,
    "sleep": _reduce_sleep,
    "activity": _reduce_activity,
    "hydration": _reduce_hydration,
    "cravings": _reduce_cravings,
    "stress": _reduce_stress,
}


def _step(acc: PeriodAccumulator, record: CanonicalRecord) -> PeriodAccumulator:
    reducer = PERIOD_REDUCERS.get(record.pillar)
    return reducer(acc, record) if reducer else acc


def _positive(value: Any) -> float | None:
    number = read_number(value)
    return number if number > 0 else None


def _profile_height(profile: dict[str, Any]) -> float | None:
    onboarding = profile.get("onboarding") or {}
    return _positive(onboarding.get("height")) or _positive(profile.get("height"))


def measurement_trends(
    measurements: list[CanonicalRecord],
    profile: dict[str, Any],
) -> dict[str, Any]:
    """First/last weight and waist-to-height ratio from the ordered measurements history."""
    ordered = sorted(measurements, key=lambda r: r.occurs_at)
    weights = [
        (r.occurs_at, w) for r in ordered
        if (w := _positive(r.payload.get("weight"))) is not None
    ]
    waists = [
        (r.occurs_at, w) for r in ordered
        if (w := _positive(r.payload.get("waist"))) is not None
    ]

    trends: dict[str, Any] = {
        "start_weight": weights[0][1] if weights else None,
        "current_weight": weights[-1][1] if weights else None,
        "last_weight_date": weights[-1][0] if weights else None,
        "last_waist_date": waists[-1][0] if waists else None,
    }

    height = _profile_height(profile)
    stored_ratio = _positive(profile.get("wthr"))
    if waists and height:
        trends["start_waist_to_height_ratio"] = round(waists[0][1] / height, 3)
        trends["current_waist_to_height_ratio"] = round(waists[-1][1] / height, 3)
    else:
        trends["start_waist_to_height_ratio"] = stored_ratio
        trends["current_waist_to_height_ratio"] = stored_ratio
    return trends


def profile_facts(profile: dict[str, Any], now: datetime) -> dict[str, Any]:
    onboarding = profile.get("onboarding") or {}
    age_years = 0
    birthdate = parse_instant(onboarding.get("birthdate"))
    if birthdate is not None:
        age_years = max(0, math.floor((now.date() - birthdate.date()).days / 365.25))
    return {
        "age_years": age_years,
        "sex": onboarding.get("sex") or "unspecified",
        "unit_system": "kg" if onboarding.get("units") == "metric" else "lbs",
    }


def summarize_period(
    records: list[CanonicalRecord],
    measurements: list[CanonicalRecord],
    profile: dict[str, Any],
    *,
    days: int,
    offset_minutes: float,
    now: datetime,
) -> ClientSummary:
    """Fold a period's canonical records into a ClientSummary (pure)."""
    acc = reduce(_step, records, PeriodAccumulator(offset_minutes=offset_minutes))

    recent = [t for t in acc.binge_times if now - BINGE_RECENCY <= t <= now]
    avg_nutrients = {name: 0.0 for name in HEADLINE_NUTRIENTS}
    for name, total in acc.nutrient_totals.items():
        avg_nutrients[name] = total / days

    return ClientSummary(
        generated_at=now,
        period_days=days,
        **profile_facts(profile, now),
        **measurement_trends(measurements, profile),
        avg_sleep=acc.sleep_hours / len(acc.sleep_days) if acc.sleep_days else 0.0,
        avg_activity=acc.activity_minutes / days,
        avg_hydration=acc.hydration / len(acc.hydration_days) if acc.hydration_days else 0.0,
        cravings_count=acc.cravings,
        binges_count=acc.binges,
        stress_events_count=acc.stress_events,
        avg_upf=acc.upf_total / acc.upf_meals if acc.upf_meals else 0.0,
        avg_nutrients=avg_nutrients,
        recent_binge_detected=bool(recent),
        most_recent_binge_at=max(recent) if recent else None,
    )


async def compute_client_summary(
    store: RecordStore,
    client_id: str,
    *,
    days: int = DEFAULT_PERIOD_DAYS,
    now: datetime | None = None,
    dry_run: bool = False,
) -> ClientSummary:
    """Recompute and persist the rolling summary for a client."""
    now = now or datetime.now(timezone.utc)
    profile = await store.get(client_path(client_id))
    if profile is None:
        raise InvalidInputError(
            code="unknown_client",
            message=f"Client {client_id} not found.",
            field="client_id",
        )

    tz_context = resolve_timezone_context(profile, now.date())
    offset = tz_context["offset_minutes"]
    today = local_date_of(now, offset)
    window = build_period_window(today, days, tz_context["timezone"], offset, now)

    raw = await fetch_records(store, client_id, window)
    records = normalize_records(raw, window)
    history = await fetch_collection(store, client_id, "measurements", HISTORY_START, now)
    measurements = normalize_all(history)

    summary = summarize_period(
        records,
        measurements,
        profile,
        days=days,
        offset_minutes=offset,
        now=now,
    )
    if not dry_run:
        await store.set(
            client_path(client_id),
            {"clientSummary": summary.to_document()},
            merge=True,
        )

    logger.info(
        "Updated client summary for client=%s (days=%d, records=%d, timezone=%s, assumed=%s, dry_run=%s)",
        client_id,
        days,
        len(records),
        tz_context["timezone"],
        tz_context["assumed"],
        dry_run,
    )
    return summary
