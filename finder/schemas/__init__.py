"""Pydantic schemas for API request/response validation."""

from finder.schemas.api_key import ApiKeyRead, ApiKeyUpsert
from finder.schemas.rate_limit import RateLimitStatus
from finder.schemas.search import (
    BusinessResult,
    SearchHistoryItem,
    SearchRequest,
    SearchResponse,
)
from finder.schemas.stats import SourceRead, UsageStats

__all__ = [
    "ApiKeyRead",
    "ApiKeyUpsert",
    "BusinessResult",
    "RateLimitStatus",
    "SearchHistoryItem",
    "SearchRequest",
    "SearchResponse",
    "SourceRead",
    "UsageStats",
]
