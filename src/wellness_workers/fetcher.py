"""Fan-out fetch of all pillar records for a temporal window.

Each pillar collection is queried twice (flat ``entryDate`` and historical
nested ``log.entryDate``), calendar collections once. Every query is
isolated: a failure is logged and treated as "no data for this pillar".
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from .metrics import record_source_failure
from .models import RawRecord, RecordShape
from .pillars import EVENT_PILLARS, LOG_PILLARS, get_pillar
from .store import RecordStore
from .temporal import TemporalWindow

logger = logging.getLogger(__name__)


async def _query_shape(
    store: RecordStore,
    client_id: str,
    pillar: str,
    shape: RecordShape,
    date_field: str,
    start: datetime,
    end: datetime,
) -> list[RawRecord]:
    spec = get_pillar(pillar)
    try:
        docs = await store.query(
            spec.collection,
            client_id,
            date_field,
            start,
            end,
            client_field=spec.client_field,
        )
    except Exception:
        record_source_failure(pillar)
        logger.exception(
            "Failed to fetch %s records (%s shape) for client=%s; treating as empty",
            pillar, shape, client_id,
            extra={"wellness_pillar": pillar, "wellness_client_id": client_id},
        )
        return []
    return [_tag(doc, pillar, shape) for doc in docs if doc.get("id") is not None]


def _tag(doc: dict[str, Any], pillar: str, shape: RecordShape) -> RawRecord:
    data = {k: v for k, v in doc.items() if k != "id"}
    if pillar == "live-event":
        # Client calendar entries carry their own subtype (e.g. "workout").
        pillar = data.get("type") or "live-event"
    return RawRecord(id=str(doc["id"]), pillar=pillar, shape=shape, data=data)


def union_shapes(flat: list[RawRecord], nested: list[RawRecord]) -> list[RawRecord]:
    """Union flat and nested results by record id; the flat copy wins."""
    by_id: dict[str, RawRecord] = {}
    for record in flat:
        by_id.setdefault(record.id, record)
    for record in nested:
        by_id.setdefault(record.id, record)
    return list(by_id.values())


async def fetch_collection(
    store: RecordStore,
    client_id: str,
    pillar: str,
    start: datetime,
    end: datetime,
) -> list[RawRecord]:
    """Fetch one pillar over [start, end] in both storage shapes."""
    spec = get_pillar(pillar)
    queries = [_query_shape(store, client_id, pillar, "flat", spec.date_field, start, end)]
    if spec.nested_date_field:
        queries.append(
            _query_shape(store, client_id, pillar, "nested", spec.nested_date_field, start, end)
        )
    results = await asyncio.gather(*queries)
    flat = results[0]
    nested = results[1] if len(results) > 1 else []
    return union_shapes(flat, nested)


async def fetch_records(
    store: RecordStore,
    client_id: str,
    window: TemporalWindow,
) -> list[RawRecord]:
    """Fetch every pillar and calendar collection across the window's query range."""
    pillars = LOG_PILLARS + EVENT_PILLARS
    results = await asyncio.gather(*(
        fetch_collection(store, client_id, pillar, window.query_start, window.query_end)
        for pillar in pillars
    ))
    records = [record for batch in results for record in batch]
    logger.debug(
        "Fetched %d raw records for client=%s across %d pillars",
        len(records), client_id, len(pillars),
    )
    return records
