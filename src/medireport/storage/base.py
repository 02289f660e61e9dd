"""Persistence adapter interface for per-owner record collections."""

from __future__ import annotations

from typing import Any, Protocol

from medireport.storage.models import Record

REPORTS = "reports"
PRESCRIPTIONS = "prescriptions"
REMINDERS = "reminders"
NEARBY_RESULTS = "nearby_results"
COLLECTIONS = frozenset({REPORTS, PRESCRIPTIONS, REMINDERS, NEARBY_RESULTS})


class RecordStore(Protocol):
    async def migrate(self) -> None: ...

    async def save(self, collection: str, owner_id: str, payload: dict[str, Any]) -> str: ...

    async def list(self, collection: str, owner_id: str) -> list[Record]: ...

    async def get(self, collection: str, owner_id: str, record_id: str) -> Record | None: ...

    async def set_enabled(self, owner_id: str, record_id: str, enabled: bool) -> Record: ...

    async def aclose(self) -> None: ...


def check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"unknown collection: {collection!r}")
    return collection


def check_owner(owner_id: str) -> str:
    owner = owner_id.strip()
    if not owner or "/" in owner:
        raise ValueError("owner_id must be a non-empty path segment")
    return owner


def newest_first(records: list[Record]) -> list[Record]:
    """Sort descending by ``created_at``; ties keep their insertion order."""
    return sorted(records, key=lambda record: record.created_at, reverse=True)
