"""Calendar day read path: entries, cached summary and timeline layout for one local day."""

from __future__ import annotations

import logging
from datetime import date

from .daily_summary import daily_summary_path
from .errors import GENERIC_LOAD_ERROR, InvalidInputError
from .fetcher import fetch_records
from .models import CalendarDayResult, CalendarEntry, DailySummary
from .normalizer import normalize_records
from .store import RecordStore
from .temporal import build_day_window, parse_local_date
from .timeline import hour_ruler, layout_day

logger = logging.getLogger(__name__)


async def load_cached_summary(store: RecordStore, client_id: str, day: date) -> DailySummary:
    """Cached DailySummary for the day, or a zeroed one when none is readable.

    An unreachable store or a malformed cache document only costs the summary
    panel; entries and layout still render.
    """
    path = daily_summary_path(client_id, day)
    try:
        document = await store.get(path)
        if not document:
            return DailySummary(date=day)
        return DailySummary.model_validate({**document, "date": day.isoformat()})
    except Exception:
        logger.exception(
            "Failed to read cached daily summary %s; using zero summary",
            path,
            extra={"wellness_client_id": client_id},
        )
        return DailySummary(date=day)


async def get_calendar_day(
    store: RecordStore,
    client_id: str,
    local_date: date | str,
    timezone_name: str | None,
    timezone_offset_minutes: float | None,
) -> CalendarDayResult:
    """Everything the day view renders. Only invalid input yields ``success=False``."""
    try:
        if not client_id:
            raise InvalidInputError(
                code="missing_client",
                message="Client ID is required.",
                field="client_id",
            )
        day = parse_local_date(local_date)
        window = build_day_window(day, timezone_name, timezone_offset_minutes)
    except InvalidInputError as exc:
        logger.warning(
            "Rejected calendar request for client=%s: %s",
            client_id, exc,
            extra={"wellness_client_id": client_id, "wellness_error_code": exc.code},
        )
        return CalendarDayResult(success=False, error=GENERIC_LOAD_ERROR)

    raw = await fetch_records(store, client_id, window)
    records = normalize_records(raw, window)
    summary = await load_cached_summary(store, client_id, day)

    return CalendarDayResult(
        success=True,
        entries=[
            CalendarEntry(
                id=r.id,
                pillar=r.pillar,
                title=r.title,
                occurs_at=r.occurs_at,
                ends_at=r.ends_at,
                payload=r.payload,
            )
            for r in records
        ],
        summary=summary,
        layout=layout_day(records, window.filter_start),
        hour_ruler=hour_ruler(),
    )
