"""Rate limit schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class RateLimitStatus(BaseModel):
    """Read-only view of a principal's quota for one service."""

    current_usage: int
    daily_limit: int
    remaining: int
    reset_time: datetime
    is_blocked: bool
