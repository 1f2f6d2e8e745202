"""Record normalization: unwrap legacy shapes, derive the canonical instant, filter to the day.

Pure functions only. Running normalize_records twice on the same raw input
yields identical output.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from .models import CanonicalRecord, RawRecord
from .pillars import DEFAULT_TITLE, PillarSpec, get_pillar
from .temporal import TemporalWindow, parse_instant

logger = logging.getLogger(__name__)


def unwrap(data: dict[str, Any]) -> dict[str, Any]:
    """Lift fields from a nested ``log`` object; top-level fields win on collision."""
    nested = data.get("log")
    if not isinstance(nested, dict):
        return dict(data)
    merged = {**nested, **data}
    merged.pop("log", None)
    return merged


def _first_instant(data: dict[str, Any], fields: tuple[str, ...]) -> datetime | None:
    for name in fields:
        parsed = parse_instant(data.get(name))
        if parsed is not None:
            return parsed
    return None


def canonical_occurs_at(pillar: str, data: dict[str, Any]) -> datetime | None:
    """The single instant that attributes a record to a calendar day.

    Sleep is attributed to the wake-up day (``entryDate`` records bedtime)
    unless it is a nap; planner entries use ``indulgenceDate``.
    """
    spec = get_pillar(pillar)
    if pillar == "sleep":
        entry_date = parse_instant(data.get("entryDate"))
        if data.get("isNap") is True:
            return entry_date
        wake_up = parse_instant(data.get("wakeUpDay"))
        return wake_up if wake_up is not None else entry_date
    return _first_instant(data, spec.canonical_fields)


def derive_title(spec: PillarSpec, data: dict[str, Any]) -> str:
    explicit = data.get("title")
    if isinstance(explicit, str) and explicit.strip():
        return explicit
    title = spec.title_rule(data)
    if title:
        return title
    name = data.get("name")
    if isinstance(name, str) and name.strip():
        return name
    return DEFAULT_TITLE


def canonicalize(raw: RawRecord) -> CanonicalRecord | None:
    """Normalize one raw record, or None if it carries no parseable instant."""
    data = unwrap(raw.data)
    occurs_at = canonical_occurs_at(raw.pillar, data)
    if occurs_at is None:
        logger.debug("Skipping %s record %s without a parseable date", raw.pillar, raw.id)
        return None
    spec = get_pillar(raw.pillar)
    ends_at = _first_instant(data, spec.end_fields) if spec.end_fields else None
    return CanonicalRecord(
        id=raw.id,
        pillar=raw.pillar,
        occurs_at=occurs_at,
        ends_at=ends_at,
        title=derive_title(spec, data),
        payload=data,
    )


def normalize_all(raw_records: list[RawRecord]) -> list[CanonicalRecord]:
    """Dedup by (pillar, id), canonicalize and stable-sort by occurs-at; no day filter."""
    unique: dict[tuple[str, str], RawRecord] = {}
    for raw in raw_records:
        key = (raw.pillar, raw.id)
        existing = unique.get(key)
        if existing is None:
            unique[key] = raw
        elif existing.shape == "nested" and raw.shape == "flat":
            # Keeps the first-seen position, takes the flat copy's fields.
            unique[key] = raw

    canonical: list[CanonicalRecord] = []
    for raw in unique.values():
        record = canonicalize(raw)
        if record is not None:
            canonical.append(record)
    canonical.sort(key=lambda r: r.occurs_at)
    return canonical


def normalize_records(
    raw_records: list[RawRecord],
    window: TemporalWindow,
) -> list[CanonicalRecord]:
    """Canonical records that belong to the window's filter range, ordered by occurs-at."""
    return [r for r in normalize_all(raw_records) if window.contains(r.occurs_at)]
