"""Daily quota window arithmetic.

Counters are reset lazily: a row whose ``window_start`` is not today counts
as zero usage until the next increment rewrites it.  Everything here is a
pure function of the stored row values and ``now``.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta


def utc_now() -> datetime:
    return datetime.now(UTC)


def window_start(now: datetime) -> date:
    """The accounting window is the current UTC calendar day."""
    return now.astimezone(UTC).date()


def next_reset(now: datetime) -> datetime:
    """Start of the next UTC day."""
    return datetime.combine(window_start(now) + timedelta(days=1), time.min, tzinfo=UTC)


def effective_count(request_count: int, stored_window: date | None, now: datetime) -> int:
    if stored_window != window_start(now):
        return 0
    return request_count


def is_blocked(blocked_until: datetime | None, now: datetime) -> bool:
    return blocked_until is not None and blocked_until > now


def is_allowed(
    request_count: int,
    daily_limit: int,
    stored_window: date | None,
    blocked_until: datetime | None,
    now: datetime,
) -> bool:
    """A live block wins over any remaining quota."""
    if is_blocked(blocked_until, now):
        return False
    return effective_count(request_count, stored_window, now) < daily_limit


def remaining(request_count: int, daily_limit: int, stored_window: date | None, now: datetime) -> int:
    return max(0, daily_limit - effective_count(request_count, stored_window, now))
