"""Usage stats and source catalogue schemas."""

from __future__ import annotations

from pydantic import BaseModel


class UsageStats(BaseModel):
    """Totals over the most recent searches plus current quota."""

    total_searches: int
    total_results: int
    avg_response_time_ms: int
    sources_used: dict[str, int] = {}
    current_usage: int
    daily_limit: int
    remaining: int
    is_blocked: bool


class SourceRead(BaseModel):
    id: str
    name: str
    description: str
    requires_api_key: bool
    free_quota: str
