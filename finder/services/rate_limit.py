"""Rate limit service: dual-keyed daily quotas with violation blocking.

Each request is tracked against two independent counters: one for the
effective principal and one for the source IP.  All counter writes are
single ``INSERT ... ON CONFLICT DO UPDATE`` statements, so concurrent
requests never lose an increment.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from finder.config import get_settings
from finder.core.logging import get_logger
from finder.core.quota import (
    effective_count,
    is_allowed,
    is_blocked,
    next_reset,
    remaining,
    utc_now,
    window_start,
)
from finder.models.rate_limit import RateLimit
from finder.schemas.rate_limit import RateLimitStatus

logger = get_logger(__name__)

PRINCIPAL_CONSTRAINT = "uq_rate_limits_principal_service"
IP_CONSTRAINT = "uq_rate_limits_ip_service"


def client_ip(request: Request) -> str:
    """Source IP: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimitService:
    """Admission checks and usage accounting against the rate_limits table."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._now = clock

    def _identities(
        self,
        principal_id: int | None,
        ip: str | None,
        principal_limit: int | None = None,
    ) -> list[tuple[dict, str, int]]:
        """(identity columns, conflict constraint, default daily limit) per present identity."""
        settings = get_settings()
        identities = []
        if principal_id is not None:
            identities.append((
                {"principal_id": principal_id},
                PRINCIPAL_CONSTRAINT,
                principal_limit or settings.finder_principal_daily_limit,
            ))
        if ip:
            identities.append((
                {"ip_address": ip},
                IP_CONSTRAINT,
                settings.finder_ip_daily_limit,
            ))
        return identities

    # ── Admission ────────────────────────────────────────────────

    async def allow(
        self,
        db: AsyncSession,
        principal_id: int | None,
        service: str,
        ip: str | None = None,
        *,
        daily_limit: int | None = None,
    ) -> bool:
        """True if every present identity is under quota and not blocked.

        Fails open: any error while checking is logged and the request is
        admitted.  The check runs in a SAVEPOINT so a failure here leaves the
        request transaction usable.
        """
        now = self._now()
        today = window_start(now)

        try:
            async with db.begin_nested():
                for identity, constraint, default_limit in self._identities(
                    principal_id, ip, daily_limit
                ):
                    set_: dict = {"updated_at": func.now()}
                    if daily_limit is not None and "principal_id" in identity:
                        set_["daily_limit"] = daily_limit

                    stmt = (
                        pg_insert(RateLimit)
                        .values(
                            **identity,
                            service=service,
                            request_count=0,
                            daily_limit=default_limit,
                            window_start=today,
                            violations=0,
                        )
                        .on_conflict_do_update(constraint=constraint, set_=set_)
                        .returning(RateLimit)
                        .execution_options(populate_existing=True)
                    )
                    result = await db.execute(stmt)
                    row = result.scalar_one()

                    if not is_allowed(
                        row.request_count, row.daily_limit, row.window_start, row.blocked_until, now
                    ):
                        logger.info(
                            "rate_limit_denied",
                            service=service,
                            identity=next(iter(identity)),
                            request_count=effective_count(row.request_count, row.window_start, now),
                            daily_limit=row.daily_limit,
                            blocked=is_blocked(row.blocked_until, now),
                        )
                        return False
        except Exception:
            logger.error(
                "rate_limit_check_failed",
                service=service,
                principal_id=principal_id,
                exc_info=True,
            )
            return True

        return True

    # ── Accounting ───────────────────────────────────────────────

    async def _write(
        self,
        db: AsyncSession,
        statements: list,
        *,
        event: str,
        service: str,
        principal_id: int | None,
    ) -> bool:
        """Run counter upserts in a SAVEPOINT. Failures are logged, never raised.

        Counter writes never fail a completed search or replace the error
        that triggered a violation.
        """
        try:
            async with db.begin_nested():
                for stmt in statements:
                    await db.execute(stmt)
        except Exception:
            logger.error(event, service=service, principal_id=principal_id, exc_info=True)
            return False
        return True

    async def increment(
        self,
        db: AsyncSession,
        principal_id: int | None,
        service: str,
        ip: str | None = None,
    ) -> None:
        """Count one completed request; a stale window restarts at 1."""
        today = window_start(self._now())

        statements = [
            pg_insert(RateLimit)
            .values(
                **identity,
                service=service,
                request_count=1,
                daily_limit=default_limit,
                window_start=today,
                violations=0,
            )
            .on_conflict_do_update(
                constraint=constraint,
                set_={
                    "request_count": case(
                        (RateLimit.window_start == today, RateLimit.request_count + 1),
                        else_=1,
                    ),
                    "window_start": today,
                    "updated_at": func.now(),
                },
            )
            for identity, constraint, default_limit in self._identities(principal_id, ip)
        ]
        await self._write(
            db,
            statements,
            event="rate_limit_increment_failed",
            service=service,
            principal_id=principal_id,
        )

    async def record_violation(
        self,
        db: AsyncSession,
        principal_id: int | None,
        service: str,
        ip: str | None = None,
    ) -> None:
        """Bump the violation count and block for a fresh full period."""
        now = self._now()
        blocked_until = now + timedelta(hours=get_settings().finder_violation_block_hours)

        statements = [
            pg_insert(RateLimit)
            .values(
                **identity,
                service=service,
                request_count=0,
                daily_limit=default_limit,
                window_start=window_start(now),
                violations=1,
                blocked_until=blocked_until,
            )
            .on_conflict_do_update(
                constraint=constraint,
                set_={
                    "violations": RateLimit.violations + 1,
                    "blocked_until": blocked_until,
                    "updated_at": func.now(),
                },
            )
            for identity, constraint, default_limit in self._identities(principal_id, ip)
        ]
        recorded = await self._write(
            db,
            statements,
            event="rate_limit_violation_failed",
            service=service,
            principal_id=principal_id,
        )
        if recorded:
            logger.warning(
                "rate_limit_violation_recorded",
                service=service,
                principal_id=principal_id,
                ip_address=ip,
                blocked_until=blocked_until.isoformat(),
            )

    # ── Status & admin ───────────────────────────────────────────

    async def get_status(
        self,
        db: AsyncSession,
        principal_id: int,
        service: str,
    ) -> RateLimitStatus:
        now = self._now()
        result = await db.execute(
            select(RateLimit)
            .where(RateLimit.principal_id == principal_id)
            .where(RateLimit.service == service)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()

        if row is None:
            limit = get_settings().finder_principal_daily_limit
            return RateLimitStatus(
                current_usage=0,
                daily_limit=limit,
                remaining=limit,
                reset_time=next_reset(now),
                is_blocked=False,
            )

        return RateLimitStatus(
            current_usage=effective_count(row.request_count, row.window_start, now),
            daily_limit=row.daily_limit,
            remaining=remaining(row.request_count, row.daily_limit, row.window_start, now),
            reset_time=next_reset(now),
            is_blocked=is_blocked(row.blocked_until, now),
        )

    async def reset(
        self,
        db: AsyncSession,
        principal_id: int,
        service: str,
    ) -> None:
        """Zero usage and violations and lift any block for a principal."""
        today = window_start(self._now())
        stmt = (
            pg_insert(RateLimit)
            .values(
                principal_id=principal_id,
                service=service,
                request_count=0,
                daily_limit=get_settings().finder_principal_daily_limit,
                window_start=today,
                violations=0,
            )
            .on_conflict_do_update(
                constraint=PRINCIPAL_CONSTRAINT,
                set_={
                    "request_count": 0,
                    "window_start": today,
                    "violations": 0,
                    "blocked_until": None,
                    "updated_at": func.now(),
                },
            )
        )
        await db.execute(stmt)
        logger.info("rate_limit_reset", service=service, principal_id=principal_id)


rate_limit_service = RateLimitService()
