"""Shared fixtures: an in-memory RecordStore with the same query semantics as Postgres."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

import pytest

from wellness_workers.temporal import parse_instant


def _resolve(data: dict[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class FakeRecordStore:
    def __init__(self) -> None:
        self.records: dict[str, list[tuple[str, str, dict[str, Any]]]] = {}
        self.documents: dict[str, dict[str, Any]] = {}
        self.failing: set[str] = set()
        self.queries: list[tuple[str, str, str]] = []
        self.writes: list[tuple[str, dict[str, Any], bool]] = []

    def add(self, collection: str, client_id: str, record_id: str, data: dict[str, Any]) -> None:
        self.records.setdefault(collection, []).append((client_id, record_id, data))

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
        self.queries.append((collection, client_id, date_field))
        if collection in self.failing:
            raise ConnectionError(f"{collection} unavailable")
        hits = []
        for owner, record_id, data in self.records.get(collection, []):
            if owner != client_id:
                continue
            instant = parse_instant(_resolve(data, date_field))
            if instant is not None and start <= instant <= end:
                hits.append((instant, record_id, data))
        hits.sort(key=lambda hit: (hit[0], hit[1]))
        return [{**copy.deepcopy(data), "id": record_id} for _, record_id, data in hits]

    async def get(self, path: str) -> dict[str, Any] | None:
        document = self.documents.get(path)
        return copy.deepcopy(document) if document is not None else None

    async def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self.writes.append((path, copy.deepcopy(data), merge))
        if merge and path in self.documents:
            self.documents[path] = {**self.documents[path], **copy.deepcopy(data)}
        else:
            self.documents[path] = copy.deepcopy(data)

    async def update(self, path: str, data: dict[str, Any]) -> None:
        if path not in self.documents:
            raise LookupError(f"No document at path {path!r}")
        self.documents[path] = {**self.documents[path], **copy.deepcopy(data)}


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()
