"""Record store collaborator.

The pipeline only needs range queries per (collection, client, date field)
and path-addressed documents for the summary caches. PostgresRecordStore
backs both with two JSONB tables.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS wellness_records (
        collection TEXT NOT NULL,
        client_id TEXT NOT NULL,
        id TEXT NOT NULL,
        data JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (collection, client_id, id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wellness_documents (
        path TEXT PRIMARY KEY,
        data JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    # Mirrors temporal.parse_instant: ISO strings (naive read as UTC), epoch
    # seconds/milliseconds and {"seconds", "nanoseconds"} maps; NULL otherwise.
    r"""
    CREATE OR REPLACE FUNCTION wellness_instant(value JSONB) RETURNS TIMESTAMPTZ
    LANGUAGE plpgsql STABLE
    SET timezone = 'UTC'
    AS $$
    DECLARE
        epoch DOUBLE PRECISION;
    BEGIN
        CASE jsonb_typeof(value)
        WHEN 'number' THEN
            epoch := (value #>> '{}')::DOUBLE PRECISION;
        WHEN 'object' THEN
            RETURN to_timestamp(
                COALESCE(value ->> 'seconds', value ->> '_seconds')::DOUBLE PRECISION
                + COALESCE(value ->> 'nanoseconds', value ->> '_nanoseconds', '0')::DOUBLE PRECISION / 1e9
            );
        WHEN 'string' THEN
            IF btrim(value #>> '{}') ~ '^\d+(\.\d+)?$' THEN
                epoch := btrim(value #>> '{}')::DOUBLE PRECISION;
            ELSE
                RETURN (value #>> '{}')::TIMESTAMPTZ;
            END IF;
        ELSE
            RETURN NULL;
        END CASE;
        IF epoch > 1e12 THEN
            epoch := epoch / 1000;
        END IF;
        RETURN to_timestamp(epoch);
    EXCEPTION WHEN others THEN
        RETURN NULL;
    END;
    $$
    """,
)


class RecordStore(Protocol):
    async def query(
        self,
        collection: str,
        client_id: str,
        date_field: str,
        start: datetime,
        end: datetime,
        *,
        client_field: str = "client_id",
    ) -> list[dict[str, Any]]:
        """Return documents whose ``date_field`` (dotted path) lies in [start, end].

        Each document carries its ``id`` key alongside the stored fields.
        """
        ...

    async def get(self, path: str) -> dict[str, Any] | None:
        ...

    async def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        ...

    async def update(self, path: str, data: dict[str, Any]) -> None:
        ...


def json_path(date_field: str) -> list[str]:
    """Split a dotted field name into a Postgres ``#>>`` path array."""
    parts = [p for p in date_field.split(".") if p]
    if not parts:
        raise ValueError(f"Invalid date field: {date_field!r}")
    return parts


class PostgresRecordStore:
    """psycopg-backed store. Opens one connection per call so fan-out queries run concurrently."""

    def __init__(self, conninfo: str) -> None:
        self._conninfo = conninfo

    async def _connect(self, **kwargs: Any) -> psycopg.AsyncConnection[Any]:
        return await psycopg.AsyncConnection.connect(self._conninfo, **kwargs)

    async def ensure_schema(self) -> None:
        async with await self._connect() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
        logger.info("Record store schema ensured")

    async def query(
        self,
        collection: str,
        client_id: str,
        date_field: str,
        start: datetime,
        end: datetime,
        *,
        client_field: str = "client_id",
    ) -> list[dict[str, Any]]:
        # client_field names the owner key inside calendar documents; rows
        # are always stamped with client_id on write, so the column suffices.
        path = json_path(date_field)
        async with await self._connect() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id, data
                    FROM (
                        SELECT id, data, wellness_instant(data #> %s) AS instant
                        FROM wellness_records
                        WHERE collection = %s AND client_id = %s
                    ) AS dated
                    WHERE instant BETWEEN %s AND %s
                    ORDER BY instant ASC, id ASC
                    """,
                    (path, collection, client_id, start, end),
                )
                rows = await cur.fetchall()
        return [{**(row["data"] or {}), "id": row["id"]} for row in rows]

    async def get(self, path: str) -> dict[str, Any] | None:
        async with await self._connect() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    "SELECT data FROM wellness_documents WHERE path = %s",
                    (path,),
                )
                row = await cur.fetchone()
        if row is None:
            return None
        return row["data"]

    async def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        if merge:
            sql = """
                INSERT INTO wellness_documents (path, data, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (path) DO UPDATE SET
                    data = wellness_documents.data || EXCLUDED.data,
                    updated_at = NOW()
            """
        else:
            sql = """
                INSERT INTO wellness_documents (path, data, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (path) DO UPDATE SET
                    data = EXCLUDED.data,
                    updated_at = NOW()
            """
        async with await self._connect() as conn:
            await conn.execute(sql, (path, Jsonb(data)))

    async def update(self, path: str, data: dict[str, Any]) -> None:
        async with await self._connect() as conn:
            cur = await conn.execute(
                """
                UPDATE wellness_documents
                SET data = data || %s, updated_at = NOW()
                WHERE path = %s
                """,
                (Jsonb(data), path),
            )
            if cur.rowcount == 0:
                raise LookupError(f"No document at path {path!r}")
