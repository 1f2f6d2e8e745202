"""Daily summary recompute handler.

Payload: ``{"client_id", "entry_date"}`` from the write hook, or an explicit
``{"client_id", "date", "timezone", "timezone_offset"}``. When the timezone
is absent it is resolved from the client profile, defaulting to UTC.
"""

import logging
from typing import Any

from ..daily_summary import compute_daily_summary
from ..errors import InvalidInputError
from ..period_summary import client_path
from ..registry import register
from ..store import RecordStore
from ..temporal import (
    local_date_of,
    normalize_timezone_name,
    offset_minutes_for,
    parse_instant,
    parse_local_date,
    resolve_timezone_context,
)

logger = logging.getLogger(__name__)


async def resolve_day_request(
    store: RecordStore, payload: dict[str, Any]
) -> tuple[str, str, float]:
    """Return (local date ISO, timezone name, offset minutes) for a daily recompute payload."""
    local_day = payload.get("date")
    if local_day and payload.get("timezone") is not None:
        timezone_name = payload["timezone"]
        offset = payload.get("timezone_offset")
        zone = normalize_timezone_name(timezone_name)
        if offset is None and zone is not None:
            offset = offset_minutes_for(zone, parse_local_date(local_day))
        return local_day, timezone_name, offset

    entry_date = None
    if local_day:
        anchor = parse_local_date(local_day)
    else:
        entry_date = parse_instant(payload.get("entry_date"))
        if entry_date is None:
            raise InvalidInputError(
                code="invalid_date",
                message=f"Unparseable entry_date in summary.daily payload: {payload.get('entry_date')!r}",
                field="entry_date",
            )
        anchor = entry_date.date()

    client_id = payload["client_id"]
    profile = await store.get(client_path(client_id))
    if profile is None:
        logger.warning(
            "Client profile %s not found; defaulting to UTC for daily summary",
            client_id,
            extra={"wellness_client_id": client_id},
        )
    tz_context = resolve_timezone_context(profile, anchor)
    offset = tz_context["offset_minutes"]
    if entry_date is not None:
        local_day = local_date_of(entry_date, offset).isoformat()
    return local_day, tz_context["timezone"], offset


@register("summary.daily")
async def update_daily_summary(store: RecordStore, payload: dict[str, Any]) -> None:
    """Recompute the cached DailySummary for the day a record was written to."""
    client_id = payload.get("client_id")
    if not client_id:
        raise ValueError("Missing client_id in summary.daily payload")

    day, timezone_name, offset = await resolve_day_request(store, payload)
    await compute_daily_summary(store, client_id, day, timezone_name, offset)
