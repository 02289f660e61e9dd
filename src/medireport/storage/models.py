"""Record model shared by the dashboard and persistence backends."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class Record(BaseModel):
    """One persisted document under ``<collection>/<owner_id>/<record_id>``."""

    record_id: str
    collection: str
    owner_id: str
    created_at: datetime
    payload: dict[str, Any]

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.owner_id}/{self.record_id}"

    @property
    def enabled(self) -> bool | None:
        value = self.payload.get("enabled")
        return value if isinstance(value, bool) else None
