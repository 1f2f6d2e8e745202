"""Record and summary models.

Records flowing through the pipeline are frozen dataclasses. Summaries and
layout output are pydantic models whose aliases give the camelCase document
shape persisted in the store.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RecordShape = Literal["flat", "nested"]


@dataclass(frozen=True)
class RawRecord:
    """One document as returned by the store, tagged with its pillar and storage shape."""

    id: str
    pillar: str
    shape: RecordShape
    data: dict[str, Any]


@dataclass(frozen=True)
class CanonicalRecord:
    """One logical event after normalization."""

    id: str
    pillar: str
    occurs_at: dt.datetime
    title: str
    payload: dict[str, Any] = field(default_factory=dict)
    ends_at: dt.datetime | None = None


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class NutrientAmount(_DocumentModel):
    value: float = 0.0
    unit: str = "g"


class DailySummary(_DocumentModel):
    date: dt.date
    calories: int = 0
    upf_percentage: int = Field(default=0, ge=0, le=100)
    hydration_amount: int = 0
    sleep_hours: int = 0
    activity_minutes: int = 0
    nutrients: dict[str, NutrientAmount] = Field(default_factory=dict)
    last_calculated: dt.datetime | None = None


class ClientSummary(_DocumentModel):
    generated_at: dt.datetime
    period_days: int
    age_years: int = 0
    sex: str = "unspecified"
    unit_system: Literal["kg", "lbs"] = "lbs"
    start_weight: float | None = None
    current_weight: float | None = None
    last_weight_date: dt.datetime | None = None
    start_waist_to_height_ratio: float | None = None
    current_waist_to_height_ratio: float | None = None
    last_waist_date: dt.datetime | None = None
    avg_sleep: float = 0.0
    avg_activity: float = 0.0
    avg_hydration: float = 0.0
    cravings_count: int = 0
    binges_count: int = 0
    stress_events_count: int = 0
    avg_upf: float = 0.0
    avg_nutrients: dict[str, float] = Field(default_factory=dict)
    recent_binge_detected: bool = False
    most_recent_binge_at: dt.datetime | None = None


class PositionedRecord(_DocumentModel):
    record_id: str
    top: float
    height: float
    left: float
    width: float


class CalendarEntry(_DocumentModel):
    id: str
    pillar: str
    title: str
    occurs_at: dt.datetime
    ends_at: dt.datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class CalendarDayResult(_DocumentModel):
    success: bool
    entries: list[CalendarEntry] = Field(default_factory=list)
    summary: DailySummary | None = None
    layout: list[PositionedRecord] = Field(default_factory=list)
    hour_ruler: list[int] = Field(default_factory=list)
    error: str | None = None
