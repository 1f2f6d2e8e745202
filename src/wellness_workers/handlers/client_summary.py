"""Rolling client summary recompute handler."""

from typing import Any

from ..period_summary import DEFAULT_PERIOD_DAYS, compute_client_summary
from ..registry import register
from ..store import RecordStore


@register("summary.period")
async def update_client_summary(store: RecordStore, payload: dict[str, Any]) -> None:
    client_id = payload.get("client_id")
    if not client_id:
        raise ValueError("Missing client_id in summary.period payload")

    await compute_client_summary(
        store,
        client_id,
        days=int(payload.get("days") or DEFAULT_PERIOD_DAYS),
        dry_run=bool(payload.get("dry_run", False)),
    )
