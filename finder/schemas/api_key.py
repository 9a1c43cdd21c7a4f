"""Provider API key schemas. Key material is never returned."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ApiKeyUpsert(BaseModel):
    service: str
    key_name: str
    key_value: str
    daily_limit: int | None = None


class ApiKeyRead(BaseModel):
    service: str
    key_name: str
    is_active: bool
    daily_limit: int | None = None
    usage_count: int
    last_used_at: datetime | None = None
