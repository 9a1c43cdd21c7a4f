"""Business finder: the search orchestrator.

One search runs strictly in this order:

    admission -> cache lookup -> [miss] provider call -> merge
              -> persist -> usage increment -> commit

A cache hit returns the stored result and costs no quota.  Usage is only
counted once the result is persisted.  Client-attributable failures after
admission record a rate-limit violation; provider failures never do.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from finder.config import get_settings
from finder.core.errors import NotFound, ProviderUnavailable, RateLimited, SearchError
from finder.core.logging import get_logger
from finder.core.merger import merge_results
from finder.core.principal import Caller, effective_principal
from finder.core.query import NormalizedQuery, query_hash
from finder.models.business_search import BusinessSearch
from finder.providers import SOURCE_CATALOG, build_adapters
from finder.providers.base import (
    NormalizedResult,
    ProviderAdapter,
    ProviderError,
    ProviderID,
    SourceInfo,
)
from finder.schemas.search import BusinessResult, SearchHistoryItem, SearchResponse
from finder.schemas.stats import UsageStats
from finder.services.credentials import CredentialService, credential_service
from finder.services.rate_limit import RateLimitService, rate_limit_service
from finder.services.search_ledger import SearchLedger, search_ledger

logger = get_logger(__name__)

STATS_WINDOW = 100


def _to_response(
    record: BusinessSearch,
    *,
    cached: bool,
    response_time_ms: int | None = None,
    limit: int | None = None,
) -> SearchResponse:
    """Stored results are re-read through NormalizedResult; a cached entry is cut to ``limit``."""
    results = [
        BusinessResult.from_result(NormalizedResult.from_dict(r))
        for r in record.results[:limit]
    ]
    return SearchResponse(
        search_id=record.id,
        query=record.query,
        location=record.location,
        total_results=len(results),
        results=results,
        sources=list(record.sources),
        response_time_ms=record.response_time_ms if response_time_ms is None else response_time_ms,
        cached=cached,
        expires_at=record.expires_at,
    )


class BusinessFinderService:
    """Runs searches and serves the per-principal search history."""

    def __init__(
        self,
        adapters: Mapping[ProviderID, ProviderAdapter] | None = None,
        rate_limiter: RateLimitService = rate_limit_service,
        ledger: SearchLedger = search_ledger,
        credentials: CredentialService = credential_service,
    ) -> None:
        self._adapters = adapters
        self.rate_limiter = rate_limiter
        self.ledger = ledger
        self.credentials = credentials

    @property
    def adapters(self) -> Mapping[ProviderID, ProviderAdapter]:
        if self._adapters is None:
            self._adapters = build_adapters()
        return self._adapters

    # ── Search ───────────────────────────────────────────────────

    async def search(
        self,
        db: AsyncSession,
        query: NormalizedQuery,
        caller: Caller,
        source_ip: str | None = None,
    ) -> SearchResponse:
        started = time.monotonic()
        service = get_settings().finder_service_name
        principal_id, tenant_id = effective_principal(caller)

        if caller.is_admin:
            logger.info(
                "admin_business_search",
                admin_user_id=caller.user_id,
                query=query.text,
                location=query.location,
            )

        if not await self.rate_limiter.allow(db, principal_id, service, source_ip):
            status = await self.rate_limiter.get_status(db, principal_id, service)
            raise RateLimited(remaining=status.remaining, reset_time=status.reset_time)

        try:
            digest = query_hash(query)
            cached = await self.ledger.lookup(db, digest, principal_id)
            if cached is not None:
                logger.info("finder_search_cache_hit", search_id=str(cached.id), query=query.text)
                await db.commit()
                return _to_response(cached, cached=True, limit=query.limit)

            source = self._select_source(query)
            api_key = await self._resolve_api_key(db, principal_id, source)
            results = await self._call_provider(source, query, api_key)
            merged = merge_results(results, query.limit)

            elapsed_ms = int((time.monotonic() - started) * 1000)
            record = await self.ledger.save(
                db,
                principal_id=principal_id,
                tenant_id=tenant_id,
                query=query,
                query_hash=digest,
                sources=[source],
                results=merged,
                response_time_ms=elapsed_ms,
            )
            await self.rate_limiter.increment(db, principal_id, service, source_ip)
            await db.commit()
        except SearchError as e:
            if e.is_client_error:
                await self.rate_limiter.record_violation(db, principal_id, service, source_ip)
                await db.commit()
            raise

        logger.info(
            "finder_search_completed",
            search_id=str(record.id),
            source=source.value,
            raw_results=len(results),
            total_results=len(merged),
            response_time_ms=elapsed_ms,
        )
        return _to_response(record, cached=False, response_time_ms=elapsed_ms)

    def _select_source(self, query: NormalizedQuery) -> ProviderID:
        """Exactly one provider per search: the requested one, else the primary."""
        if query.sources:
            return query.sources[0]
        return ProviderID(get_settings().finder_primary_source)

    async def _resolve_api_key(
        self,
        db: AsyncSession,
        principal_id: int,
        source: ProviderID,
    ) -> str | None:
        if not self.adapters[source].requires_api_key:
            return None

        api_key = await self.credentials.resolve_key(db, principal_id, source.value)
        if api_key is None:
            api_key = self.credentials.shared_key(source.value)
        if api_key is None:
            raise ProviderUnavailable(
                source.value,
                f"API key not available for {source.value}. "
                "Please configure your API key or select a different source.",
            )
        return api_key

    async def _call_provider(
        self,
        source: ProviderID,
        query: NormalizedQuery,
        api_key: str | None,
    ) -> list[NormalizedResult]:
        """Single attempt; retries are the adapter's own business."""
        try:
            return await self.adapters[source].search(
                query.text,
                location=query.location,
                radius_km=query.radius_km,
                api_key=api_key,
            )
        except ProviderError as e:
            logger.warning(
                "finder_provider_failed",
                provider=source.value,
                error_type=type(e).__name__,
                cause=e.cause,
            )
            raise ProviderUnavailable(source.value, e.cause) from e
        except SearchError:
            raise
        except Exception as e:
            # malformed upstream payloads surface as KeyError/TypeError/ValueError
            logger.error("finder_provider_payload_invalid", provider=source.value, exc_info=True)
            raise ProviderUnavailable(source.value, "unexpected provider response") from e

    # ── History & stats ──────────────────────────────────────────

    async def get_result(
        self,
        db: AsyncSession,
        search_id: UUID,
        caller: Caller,
    ) -> SearchResponse:
        principal_id, _ = effective_principal(caller)
        record = await self.ledger.get(db, search_id, principal_id)
        if record is None:
            raise NotFound("Search results not found or expired")
        return _to_response(record, cached=True)

    async def get_history(
        self,
        db: AsyncSession,
        caller: Caller,
        limit: int = 20,
    ) -> list[SearchHistoryItem]:
        principal_id, _ = effective_principal(caller)
        records = await self.ledger.history(db, principal_id, limit)
        return [SearchHistoryItem.model_validate(r) for r in records]

    async def get_usage_stats(self, db: AsyncSession, caller: Caller) -> UsageStats:
        principal_id, _ = effective_principal(caller)
        records = await self.ledger.history(db, principal_id, STATS_WINDOW)
        status = await self.rate_limiter.get_status(
            db, principal_id, get_settings().finder_service_name
        )

        sources_used: dict[str, int] = {}
        for record in records:
            for source in record.sources:
                sources_used[source] = sources_used.get(source, 0) + 1

        total = len(records)
        avg_ms = sum(r.response_time_ms or 0 for r in records) / total if total else 0

        return UsageStats(
            total_searches=total,
            total_results=sum(r.total_results for r in records),
            avg_response_time_ms=round(avg_ms),
            sources_used=sources_used,
            current_usage=status.current_usage,
            daily_limit=status.daily_limit,
            remaining=status.remaining,
            is_blocked=status.is_blocked,
        )

    def available_sources(self) -> list[SourceInfo]:
        return list(SOURCE_CATALOG)


business_finder_service = BusinessFinderService()
