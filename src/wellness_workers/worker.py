import asyncio
import datetime as dt
import logging
import signal

import psycopg
from psycopg import sql
from pydantic import BaseModel, Field, ValidationError, model_validator

from .config import Config
from .recompute import RecomputeQueue, trigger_summary_recalculation
from .store import PostgresRecordStore

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 5
NOTIFY_TIMEOUT_SECONDS = 5.0


class RecordWrittenNotice(BaseModel):
    """NOTIFY payload sent by the write path after a record is stored."""

    client_id: str
    entry_date: str | None = None
    date: dt.date | None = None
    # Minutes, UTC = local + offset. Lets the trigger key bursts by local day.
    timezone_offset: float | None = Field(default=None, ge=-1440, le=1440, allow_inf_nan=False)

    @model_validator(mode="after")
    def _require_day(self) -> "RecordWrittenNotice":
        if not self.entry_date and self.date is None:
            raise ValueError("entry_date or date is required")
        return self


def parse_notice(payload: str) -> RecordWrittenNotice | None:
    try:
        return RecordWrittenNotice.model_validate_json(payload)
    except ValidationError as exc:
        logger.warning(
            "Dropping invalid record notice: %s",
            exc.errors(include_url=False),
            extra={"wellness_payload": payload},
        )
        return None


class Worker:
    def __init__(self, config: Config) -> None:
        self.config = config
        self.store = PostgresRecordStore(config.database_url)
        self.queue = RecomputeQueue(self.store, config.debounce_seconds)
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        """Main entry point: listen for record writes until shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._request_shutdown)

        logger.info(
            "Worker starting (channel=%s, debounce=%.1fs)",
            self.config.notify_channel,
            self.config.debounce_seconds,
        )
        if self.config.listen_database_url != self.config.database_url:
            logger.info("Worker LISTEN uses dedicated database URL")

        await self.store.ensure_schema()
        try:
            await self._listen_loop()
        finally:
            await self.queue.close()
            logger.info("Recompute queue drained")

    def _request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown.set()

    def handle_notice(self, notice: RecordWrittenNotice) -> None:
        entry = notice.date if notice.date is not None else notice.entry_date
        logger.debug(
            "Record written for client=%s at %s",
            notice.client_id, entry,
            extra={"wellness_client_id": notice.client_id},
        )
        trigger_summary_recalculation(
            self.queue,
            notice.client_id,
            entry,
            period_days=self.config.period_days,
            timezone_offset_minutes=notice.timezone_offset,
        )

    async def _listen_loop(self) -> None:
        """LISTEN on the record channel and schedule recomputes for each write."""
        channel = self.config.notify_channel
        while not self._shutdown.is_set():
            try:
                async with await psycopg.AsyncConnection.connect(
                    self.config.listen_database_url, autocommit=True
                ) as conn:
                    await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(channel)))
                    logger.info("Listening on %s channel", channel)

                    # Keep connection alive across timeouts; only reconnect
                    # on actual connection loss (OperationalError).
                    while not self._shutdown.is_set():
                        gen = conn.notifies(timeout=NOTIFY_TIMEOUT_SECONDS)
                        async for notify in gen:
                            notice = parse_notice(notify.payload)
                            if notice is not None:
                                self.handle_notice(notice)
                            if self._shutdown.is_set():
                                break
            except psycopg.OperationalError:
                if self._shutdown.is_set():
                    break
                logger.warning(
                    "LISTEN connection lost, reconnecting in %ds", RECONNECT_DELAY_SECONDS
                )
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)

        logger.info("Listen loop stopped")
