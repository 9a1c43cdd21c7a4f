"""Search ledger: completed searches doubling as a 24h result cache.

Lookups and saves propagate database errors to the caller: a broken cache
must surface as a failed search, never as a silent success.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finder.config import get_settings
from finder.core.logging import get_logger
from finder.core.quota import utc_now
from finder.core.query import NormalizedQuery
from finder.models.business_search import BusinessSearch, SearchStatus
from finder.providers.base import NormalizedResult, ProviderID

logger = get_logger(__name__)

MAX_HISTORY = 100


class SearchLedger:
    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._now = clock

    async def lookup(
        self,
        db: AsyncSession,
        query_hash: str,
        principal_id: int,
    ) -> BusinessSearch | None:
        """Newest unexpired completed search for this principal and hash."""
        result = await db.execute(
            select(BusinessSearch)
            .where(BusinessSearch.query_hash == query_hash)
            .where(BusinessSearch.principal_id == principal_id)
            .where(BusinessSearch.status == SearchStatus.COMPLETED.value)
            .where(BusinessSearch.expires_at >= self._now())
            .order_by(BusinessSearch.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def save(
        self,
        db: AsyncSession,
        *,
        principal_id: int,
        tenant_id: int,
        query: NormalizedQuery,
        query_hash: str,
        sources: Sequence[ProviderID],
        results: Sequence[NormalizedResult],
        response_time_ms: int,
    ) -> BusinessSearch:
        now = self._now()
        record = BusinessSearch(
            principal_id=principal_id,
            tenant_id=tenant_id,
            query=query.text,
            location=query.location,
            radius_km=query.radius_km,
            category=query.category,
            result_limit=query.limit,
            query_hash=query_hash,
            sources=[s.value for s in sources],
            results=[r.to_dict() for r in results],
            total_results=len(results),
            response_time_ms=response_time_ms,
            status=SearchStatus.COMPLETED.value,
            created_at=now,
            expires_at=now + timedelta(hours=get_settings().finder_cache_ttl_hours),
        )
        db.add(record)
        await db.flush()
        return record

    async def get(
        self,
        db: AsyncSession,
        search_id: UUID,
        principal_id: int,
    ) -> BusinessSearch | None:
        result = await db.execute(
            select(BusinessSearch)
            .where(BusinessSearch.id == search_id)
            .where(BusinessSearch.principal_id == principal_id)
            .where(BusinessSearch.status == SearchStatus.COMPLETED.value)
            .where(BusinessSearch.expires_at >= self._now())
        )
        return result.scalar_one_or_none()

    async def history(
        self,
        db: AsyncSession,
        principal_id: int,
        limit: int = 20,
    ) -> list[BusinessSearch]:
        """Newest first, including expired entries."""
        result = await db.execute(
            select(BusinessSearch)
            .where(BusinessSearch.principal_id == principal_id)
            .order_by(BusinessSearch.created_at.desc())
            .limit(min(limit, MAX_HISTORY))
        )
        return list(result.scalars().all())

    async def mark_expired(self, db: AsyncSession) -> int:
        """Flag completed rows past their TTL. Operational sweep, never on the request path."""
        result = await db.execute(
            update(BusinessSearch)
            .where(BusinessSearch.status == SearchStatus.COMPLETED.value)
            .where(BusinessSearch.expires_at < self._now())
            .values(status=SearchStatus.EXPIRED_ON_READ.value)
        )
        count = result.rowcount or 0
        logger.info("business_searches_marked_expired", count=count)
        return count


search_ledger = SearchLedger()
