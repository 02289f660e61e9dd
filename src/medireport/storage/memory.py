"""In-memory storage backend for tests and local development."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from medireport.storage.base import REMINDERS, check_collection, check_owner, newest_first
from medireport.storage.models import Record


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryRecordStore:
    """Dict-backed store keyed by ``(collection, owner_id)``."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._records: dict[tuple[str, str], dict[str, Record]] = {}
        self._lock = asyncio.Lock()

    async def migrate(self) -> None:
        return None

    async def save(self, collection: str, owner_id: str, payload: dict[str, Any]) -> str:
        key = (check_collection(collection), check_owner(owner_id))
        record = Record(
            record_id=uuid4().hex,
            collection=key[0],
            owner_id=key[1],
            created_at=self._clock(),
            payload=dict(payload),
        ).model_copy(deep=True)
        async with self._lock:
            self._records.setdefault(key, {})[record.record_id] = record
        return record.record_id

    async def list(self, collection: str, owner_id: str) -> list[Record]:
        key = (check_collection(collection), check_owner(owner_id))
        async with self._lock:
            records = [item.model_copy(deep=True) for item in self._records.get(key, {}).values()]
        return newest_first(records)

    async def get(self, collection: str, owner_id: str, record_id: str) -> Record | None:
        key = (check_collection(collection), check_owner(owner_id))
        async with self._lock:
            record = self._records.get(key, {}).get(record_id)
            return record.model_copy(deep=True) if record else None

    async def set_enabled(self, owner_id: str, record_id: str, enabled: bool) -> Record:
        key = (REMINDERS, check_owner(owner_id))
        async with self._lock:
            current = self._records.get(key, {}).get(record_id)
            if current is None:
                raise KeyError(f"Reminder {record_id} does not exist")
            updated = current.model_copy(
                update={"payload": {**current.payload, "enabled": bool(enabled)}}, deep=True
            )
            self._records[key][record_id] = updated
            return updated.model_copy(deep=True)

    async def aclose(self) -> None:
        return None
