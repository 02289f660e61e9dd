"""PostgreSQL-backed record store with automatic table migration."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from medireport.flows.errors import PersistenceError
from medireport.storage.base import REMINDERS, check_collection, check_owner, newest_first
from medireport.storage.models import Record

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class PostgresRecordStore:
    """Persist per-owner records as JSONB documents in a single table."""

    def __init__(self, database_url: str, clock: Callable[[], datetime] = _utcnow) -> None:
        if not database_url:
            raise ValueError("MEDIREPORT_DATABASE_URL is required")
        self.database_url = database_url
        self._clock = clock
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    async def migrate(self) -> None:
        async with self._connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    seq BIGSERIAL,
                    collection TEXT NOT NULL,
                    owner_id TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    payload JSONB NOT NULL DEFAULT '{}'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL,
                    PRIMARY KEY (collection, owner_id, record_id)
                )
                """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_records_owner
                ON records(collection, owner_id, seq)
                """)
            await conn.commit()
        logger.info("storage event=migrated backend=postgres")

    async def save(self, collection: str, owner_id: str, payload: dict[str, Any]) -> str:
        collection = check_collection(collection)
        owner_id = check_owner(owner_id)
        record_id = uuid.uuid4().hex
        async with self._connect() as conn:
            await conn.execute(
                """
                INSERT INTO records (collection, owner_id, record_id, payload, created_at)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (collection, owner_id, record_id, self._json_wrapper(payload), self._clock()),
            )
            await conn.commit()
        logger.info(
            "storage event=saved backend=postgres collection=%s record_id=%s",
            collection,
            record_id,
        )
        return record_id

    async def list(self, collection: str, owner_id: str) -> list[Record]:
        collection = check_collection(collection)
        owner_id = check_owner(owner_id)
        async with self._connect() as conn:
            cursor = await conn.execute(
                """
                SELECT collection, owner_id, record_id, payload, created_at
                FROM records
                WHERE collection = %s AND owner_id = %s
                ORDER BY seq
                """,
                (collection, owner_id),
            )
            rows = await cursor.fetchall()
        return newest_first([self._row_to_record(row) for row in rows])

    async def get(self, collection: str, owner_id: str, record_id: str) -> Record | None:
        collection = check_collection(collection)
        owner_id = check_owner(owner_id)
        async with self._connect() as conn:
            cursor = await conn.execute(
                """
                SELECT collection, owner_id, record_id, payload, created_at
                FROM records
                WHERE collection = %s AND owner_id = %s AND record_id = %s
                """,
                (collection, owner_id, record_id),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def set_enabled(self, owner_id: str, record_id: str, enabled: bool) -> Record:
        owner_id = check_owner(owner_id)
        async with self._connect() as conn:
            cursor = await conn.execute(
                """
                UPDATE records
                SET payload = jsonb_set(payload, '{enabled}', to_jsonb(%s::boolean), true)
                WHERE collection = %s AND owner_id = %s AND record_id = %s
                RETURNING collection, owner_id, record_id, payload, created_at
                """,
                (bool(enabled), REMINDERS, owner_id, record_id),
            )
            row = await cursor.fetchone()
            await conn.commit()
        if row is None:
            raise KeyError(f"Reminder {record_id} does not exist")
        return self._row_to_record(row)

    async def aclose(self) -> None:
        return None

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[Any]:
        try:
            conn = await self._psycopg.AsyncConnection.connect(
                self.database_url, row_factory=self._dict_row
            )
        except self._psycopg.Error as exc:
            raise PersistenceError(f"database connection failed: {exc}") from exc
        try:
            async with conn:
                yield conn
        except self._psycopg.Error as exc:
            raise PersistenceError(f"database operation failed: {exc}") from exc

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Jsonb
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Jsonb

    @staticmethod
    def _parse_payload(raw: Any) -> dict[str, Any]:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if isinstance(parsed, dict):
            return parsed
        return {}

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_record(cls, row: Any) -> Record:
        return Record(
            record_id=str(row["record_id"]),
            collection=str(row["collection"]),
            owner_id=str(row["owner_id"]),
            created_at=cls._parse_datetime(row["created_at"]),
            payload=cls._parse_payload(row["payload"]),
        )
