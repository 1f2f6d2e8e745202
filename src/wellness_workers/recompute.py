"""Debounced, fire-and-forget recomputation of summary caches.

Write paths call trigger_summary_recalculation and return immediately. The
queue waits ``delay_seconds`` so the triggering write settles, then runs the
registered handler. A second trigger for the same key while the first is
still waiting replaces it. Tests await ``join()`` instead of sleeping.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, datetime
from typing import Any, Hashable

from .metrics import (
    record_handler_invocation,
    record_recompute_completed,
    record_recompute_failed,
)
from .registry import get_handler
from .store import RecordStore
from .temporal import as_utc, local_date_of, parse_instant

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0

DAILY_JOB = "summary.daily"
PERIOD_JOB = "summary.period"


class RecomputeQueue:
    def __init__(self, store: RecordStore, delay_seconds: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        self.store = store
        self.delay_seconds = delay_seconds
        # Tasks still inside their debounce delay, by (job_type, key).
        self._pending: dict[tuple[str, Hashable], asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def schedule(self, job_type: str, key: Hashable, payload: dict[str, Any]) -> asyncio.Task[None]:
        """Start (or restart) the debounced job for ``(job_type, key)``. Must run inside a loop."""
        task_key = (job_type, key)
        previous = self._pending.pop(task_key, None)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug("Debounced %s for key=%s", job_type, key)

        task = asyncio.get_running_loop().create_task(self._run(task_key, payload))
        self._pending[task_key] = task
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        for task_key, pending in list(self._pending.items()):
            if pending is task:
                del self._pending[task_key]

    async def _run(self, task_key: tuple[str, Hashable], payload: dict[str, Any]) -> None:
        job_type, key = task_key
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        else:
            await asyncio.sleep(0)

        # Past the delay: later triggers start a fresh task instead of cancelling this one.
        if self._pending.get(task_key) is asyncio.current_task():
            del self._pending[task_key]

        handler = get_handler(job_type)
        if handler is None:
            logger.warning("No handler for job_type=%s (key=%s)", job_type, key)
            record_recompute_failed()
            return

        t0 = time.monotonic()
        try:
            await handler(self.store, payload)
        except Exception:
            duration_ms = (time.monotonic() - t0) * 1000
            record_handler_invocation(handler.__name__, duration_ms, success=False)
            record_recompute_failed()
            logger.exception(
                "Recompute %s failed for key=%s",
                job_type, key,
                extra={"wellness_job_type": job_type, "wellness_duration_ms": duration_ms},
            )
            return

        duration_ms = (time.monotonic() - t0) * 1000
        record_handler_invocation(handler.__name__, duration_ms, success=True)
        record_recompute_completed()
        logger.info(
            "Recompute %s completed for key=%s",
            job_type, key,
            extra={"wellness_job_type": job_type, "wellness_duration_ms": duration_ms},
        )

    async def join(self) -> None:
        """Wait until every scheduled job (including ones scheduled meanwhile) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel jobs still waiting out their delay and wait for running ones."""
        for task in list(self._pending.values()):
            task.cancel()
        await self.join()


def trigger_summary_recalculation(
    queue: RecomputeQueue,
    client_id: str,
    entry_date: datetime | date | str,
    *,
    period_days: int | None = None,
    timezone_offset_minutes: float | None = None,
) -> None:
    """Write-path hook: schedule daily and rolling summary recomputes without blocking.

    Daily jobs debounce per local day. When the writer knows the client's
    offset, an instant is resolved to its local date here so bursts of
    writes across one day collapse into a single recompute. Without an
    offset the day is resolved later from the profile, and the instant
    itself is the debounce key.
    """
    instant = entry_date if isinstance(entry_date, datetime) else None
    if isinstance(entry_date, str):
        instant = parse_instant(entry_date)

    if isinstance(entry_date, date) and not isinstance(entry_date, datetime):
        # A bare calendar date already names the local day.
        daily_payload = {"client_id": client_id, "date": entry_date.isoformat()}
    elif instant is not None and timezone_offset_minutes is not None:
        local_day = local_date_of(instant, timezone_offset_minutes)
        daily_payload = {"client_id": client_id, "date": local_day.isoformat()}
    elif isinstance(entry_date, datetime):
        daily_payload = {"client_id": client_id, "entry_date": as_utc(entry_date).isoformat()}
    else:
        daily_payload = {"client_id": client_id, "entry_date": entry_date}

    day_key = daily_payload.get("date") or daily_payload["entry_date"]
    queue.schedule(DAILY_JOB, (client_id, day_key), daily_payload)
    period_payload: dict[str, Any] = {"client_id": client_id}
    if period_days is not None:
        period_payload["days"] = period_days
    queue.schedule(PERIOD_JOB, client_id, period_payload)
