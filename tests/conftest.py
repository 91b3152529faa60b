"""Shared fixtures for outbound engine tests.

Provides:
- Fresh settings per test (env overrides via monkeypatch are picked up)
- In-memory fake source and target clients
"""

from __future__ import annotations

from typing import Any

import pytest

from src.outbound.config import get_settings
from src.outbound.integration.clients import SourceClient, TargetClient
from src.outbound.integration.schemas import FindResult


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Clear the cached Settings before and after every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeSourceClient(SourceClient):
    """In-memory source system keyed by (object_type, id)."""

    def __init__(self, records: dict[tuple[str, str], dict[str, Any]] | None = None) -> None:
        self.records = records or {}
        self.updates: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_update = False

    async def find_one(self, object_type, record_id, select=None):
        return self.records.get((object_type, record_id))

    async def create(self, object_type, data):
        self.records[(object_type, data["_id"])] = dict(data)
        return dict(data)

    async def update(self, object_type, record_id, patch):
        if self.fail_update:
            raise RuntimeError("source update failed")
        self.updates.append((object_type, record_id, patch))
        record = self.records.setdefault((object_type, record_id), {"_id": record_id})
        record.update(patch)
        return dict(record)

    async def delete(self, object_type, record_id):
        self.records.pop((object_type, record_id), None)


class FakeTargetClient(TargetClient):
    """In-memory target CRM with optional scripted create failures."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.updated: list[tuple[str, str, dict[str, Any]]] = []
        self.deleted: list[tuple[str, str]] = []
        self.create_error: Exception | None = None
        self.insert_on_create_error: dict[str, Any] | None = None
        self._next_id = 1

    async def create(self, object_type, payload):
        if self.create_error is not None:
            if self.insert_on_create_error is not None:
                self._insert(object_type, self.insert_on_create_error)
            raise self.create_error
        record_id = self._insert(object_type, payload)
        self.created.append((object_type, payload))
        return {"id": record_id}

    async def update(self, object_type, record_id, payload):
        self.updated.append((object_type, record_id, payload))
        self.records.setdefault(record_id, {}).update(payload)

    async def find(self, object_type, where, limit=None, select=None):
        matches = [
            record
            for record in self.records.values()
            if record.get("_type") == object_type
            and all(record.get(k) == v for k, v in where.items())
        ]
        if limit is not None:
            matches = matches[:limit]
        return FindResult(total_size=len(matches), records=matches)

    async def find_one(self, object_type, record_id, select=None):
        return self.records.get(record_id)

    async def delete(self, object_type, record_id):
        self.deleted.append((object_type, record_id))
        self.records.pop(record_id, None)

    def ref_data(self, object_type, record_id):
        return {
            "refId": record_id,
            "refUrl": f"https://crm.example.com/{object_type}/{record_id}",
        }

    def _insert(self, object_type: str, payload: dict[str, Any]) -> str:
        record_id = f"{object_type[:3].upper()}{self._next_id:04d}"
        self._next_id += 1
        self.records[record_id] = {"Id": record_id, "_type": object_type, **payload}
        return record_id


@pytest.fixture
def source_client() -> FakeSourceClient:
    return FakeSourceClient()


@pytest.fixture
def target_client() -> FakeTargetClient:
    return FakeTargetClient()
