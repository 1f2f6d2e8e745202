"""Declarative pillar table.

Every stage (fetch, normalize, aggregate, layout) reads pillar behaviour from
PILLARS instead of switching on pillar names. Adding a pillar is one row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal

DurationRule = Literal["sleep_hours", "activity_minutes", "explicit_end", "fixed_15", "fixed_30"]

TitleRule = Callable[[dict[str, Any]], str | None]

DEFAULT_TITLE = "Log"


def _number_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _nutrition_title(data: dict[str, Any]) -> str:
    meal_type = data.get("mealType")
    if isinstance(meal_type, str) and meal_type:
        return meal_type[0].upper() + meal_type[1:]
    return "Meal"


def _hydration_title(data: dict[str, Any]) -> str:
    amount = data.get("amount")
    if amount is None or amount == "":
        return "Hydration"
    unit = data.get("unit") or "oz"
    return f"Hydration: {_number_text(amount)}{unit}"


def _sleep_title(data: dict[str, Any]) -> str:
    return "Nap" if data.get("isNap") is True else "Sleep"


def _planner_title(data: dict[str, Any]) -> str:
    planned = data.get("plannedIndulgence")
    return f"Planned: {planned}" if planned else "Indulgence"


def _cravings_title(data: dict[str, Any]) -> str:
    if data.get("type") == "binge":
        return "Binge Event"
    return data.get("craving") or "Craving Logged"


def _fixed(label: str) -> TitleRule:
    return lambda data: label


@dataclass(frozen=True)
class PillarSpec:
    """How one pillar is stored, dated, timed and titled."""

    pillar: str
    collection: str
    date_field: str
    nested_date_field: str | None
    duration_rule: DurationRule
    title_rule: TitleRule
    client_field: str = "client_id"
    # Fields, in preference order, that carry the canonical instant.
    occurs_at_fields: tuple[str, ...] = ()
    end_fields: tuple[str, ...] = ()

    @property
    def canonical_fields(self) -> tuple[str, ...]:
        return self.occurs_at_fields or (self.date_field,)


def _log_pillar(
    pillar: str,
    duration_rule: DurationRule,
    title_rule: TitleRule,
    date_field: str = "entryDate",
    *,
    nested: bool = True,
) -> PillarSpec:
    return PillarSpec(
        pillar=pillar,
        collection=pillar,
        date_field=date_field,
        nested_date_field=f"log.{date_field}" if nested else None,
        duration_rule=duration_rule,
        title_rule=title_rule,
    )


PILLARS: dict[str, PillarSpec] = {
    "nutrition": _log_pillar("nutrition", "fixed_30", _nutrition_title),
    "hydration": _log_pillar("hydration", "fixed_30", _hydration_title),
    "activity": _log_pillar("activity", "activity_minutes", _fixed("Activity")),
    "sleep": _log_pillar("sleep", "sleep_hours", _sleep_title),
    "stress": _log_pillar("stress", "fixed_30", _fixed("Stress Event")),
    "measurements": _log_pillar("measurements", "fixed_30", _fixed("Measurements")),
    "protocol": _log_pillar("protocol", "fixed_30", _fixed("Protocol Logged")),
    "planner": _log_pillar("planner", "fixed_15", _planner_title, "indulgenceDate", nested=False),
    "cravings": _log_pillar("cravings", "fixed_30", _cravings_title),
    "appointment": PillarSpec(
        pillar="appointment",
        collection="coachCalendar",
        date_field="start",
        nested_date_field=None,
        duration_rule="explicit_end",
        title_rule=_fixed("Appointment"),
        client_field="clientId",
        occurs_at_fields=("start", "startTime"),
        end_fields=("end", "endTime"),
    ),
    "live-event": PillarSpec(
        pillar="live-event",
        collection="clientCalendar",
        date_field="start",
        nested_date_field=None,
        duration_rule="explicit_end",
        title_rule=_fixed("Live Event"),
        client_field="userId",
        occurs_at_fields=("start", "startTime"),
        end_fields=("end", "endTime"),
    ),
}

# Per-client pillar collections, in fetch order.
LOG_PILLARS: tuple[str, ...] = (
    "nutrition", "hydration", "activity", "sleep", "stress",
    "measurements", "protocol", "planner", "cravings",
)

# Calendar collections; their stored `type` field may re-tag the pillar.
EVENT_PILLARS: tuple[str, ...] = ("appointment", "live-event")


def get_pillar(pillar: str) -> PillarSpec:
    """Return the spec for a pillar; unknown pillars (event subtypes) behave like live events."""
    spec = PILLARS.get(pillar)
    if spec is not None:
        return spec
    return PILLARS["live-event"]
