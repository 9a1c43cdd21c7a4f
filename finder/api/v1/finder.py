"""Business finder endpoints: search, history, API keys, quota."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, status

from finder.config import get_settings
from finder.core.principal import effective_principal
from finder.deps import (
    AdminCaller,
    BusinessFinder,
    ClientIp,
    Credentials,
    CurrentCaller,
    DbSession,
    RateLimiter,
)
from finder.schemas.api_key import ApiKeyRead, ApiKeyUpsert
from finder.schemas.rate_limit import RateLimitStatus
from finder.schemas.search import SearchHistoryItem, SearchRequest, SearchResponse
from finder.schemas.stats import SourceRead, UsageStats

router = APIRouter()


def _default_service() -> str:
    return get_settings().finder_service_name


@router.post("/search", response_model=SearchResponse)
async def search_businesses(
    data: SearchRequest,
    caller: CurrentCaller,
    ip: ClientIp,
    db: DbSession,
    finder: BusinessFinder,
) -> SearchResponse:
    """Run a search, or return the cached result of an identical one."""
    query = data.to_query()
    return await finder.search(db, query, caller, ip)


@router.get("/results/{search_id}", response_model=SearchResponse)
async def get_search_results(
    search_id: UUID,
    caller: CurrentCaller,
    db: DbSession,
    finder: BusinessFinder,
) -> SearchResponse:
    return await finder.get_result(db, search_id, caller)


@router.get("/history", response_model=list[SearchHistoryItem])
async def get_search_history(
    caller: CurrentCaller,
    db: DbSession,
    finder: BusinessFinder,
    limit: int = Query(20, ge=1),
) -> list[SearchHistoryItem]:
    """Newest first; limit is capped at 100."""
    return await finder.get_history(db, caller, limit=min(limit, 100))


# ── API keys ─────────────────────────────────────────────────────


@router.get("/api-keys", response_model=list[ApiKeyRead])
async def list_api_keys(
    caller: CurrentCaller,
    db: DbSession,
    credentials: Credentials,
) -> list[ApiKeyRead]:
    principal_id, _ = effective_principal(caller)
    return await credentials.list_keys(db, principal_id)


@router.put("/api-keys", response_model=ApiKeyRead)
async def save_api_key(
    data: ApiKeyUpsert,
    caller: CurrentCaller,
    db: DbSession,
    credentials: Credentials,
) -> ApiKeyRead:
    principal_id, _ = effective_principal(caller)
    key = await credentials.save_key(
        db,
        principal_id,
        data.service,
        data.key_name,
        data.key_value,
        daily_limit=data.daily_limit,
    )
    await db.commit()
    return ApiKeyRead(
        service=key.service,
        key_name=key.key_name,
        is_active=key.is_active,
        daily_limit=key.daily_limit,
        usage_count=key.usage_count,
        last_used_at=key.last_used_at,
    )


@router.delete("/api-keys/{service}/{key_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api_key(
    service: str,
    key_name: str,
    caller: CurrentCaller,
    db: DbSession,
    credentials: Credentials,
) -> None:
    principal_id, _ = effective_principal(caller)
    await credentials.delete_key(db, principal_id, service, key_name)
    await db.commit()


# ── Quota ────────────────────────────────────────────────────────


@router.get("/rate-limit/status", response_model=RateLimitStatus)
async def get_rate_limit_status(
    caller: CurrentCaller,
    db: DbSession,
    rate_limiter: RateLimiter,
    service: str | None = None,
) -> RateLimitStatus:
    principal_id, _ = effective_principal(caller)
    return await rate_limiter.get_status(db, principal_id, service or _default_service())


@router.post("/rate-limit/reset", response_model=RateLimitStatus)
async def reset_rate_limit(
    admin: AdminCaller,
    db: DbSession,
    rate_limiter: RateLimiter,
    service: str | None = None,
    principal_id: int | None = None,
) -> RateLimitStatus:
    """Admin only. Resets the given principal, or the admin's own system identity."""
    target = principal_id if principal_id is not None else effective_principal(admin)[0]
    service = service or _default_service()
    await rate_limiter.reset(db, target, service)
    await db.commit()
    return await rate_limiter.get_status(db, target, service)


# ── Catalogue & stats ────────────────────────────────────────────


@router.get("/sources", response_model=list[SourceRead])
async def list_sources(caller: CurrentCaller, finder: BusinessFinder) -> list[SourceRead]:
    return [
        SourceRead(
            id=s.id.value,
            name=s.name,
            description=s.description,
            requires_api_key=s.requires_api_key,
            free_quota=s.free_quota,
        )
        for s in finder.available_sources()
    ]


@router.get("/stats", response_model=UsageStats)
async def get_usage_stats(
    caller: CurrentCaller,
    db: DbSession,
    finder: BusinessFinder,
) -> UsageStats:
    """Totals over the last 100 searches plus current quota."""
    return await finder.get_usage_stats(db, caller)
