"""Storage backends and models."""

from __future__ import annotations

import logging

from medireport.config.settings import Settings
from medireport.storage.base import (
    COLLECTIONS,
    NEARBY_RESULTS,
    PRESCRIPTIONS,
    REMINDERS,
    REPORTS,
    RecordStore,
)
from medireport.storage.memory import InMemoryRecordStore
from medireport.storage.models import Record
from medireport.storage.postgres import PostgresRecordStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> RecordStore:
    database_url = settings.resolved_database_url()
    if database_url:
        return PostgresRecordStore(database_url)
    logger.warning("storage event=in_memory_fallback reason=database_url_missing")
    return InMemoryRecordStore()


__all__ = [
    "COLLECTIONS",
    "InMemoryRecordStore",
    "NEARBY_RESULTS",
    "PRESCRIPTIONS",
    "PostgresRecordStore",
    "REMINDERS",
    "REPORTS",
    "Record",
    "RecordStore",
    "build_store",
]
