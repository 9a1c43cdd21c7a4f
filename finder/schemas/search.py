"""Search schemas for the business finder endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field

from finder.core.query import DEFAULT_LIMIT, NormalizedQuery, build_query
from finder.providers.base import NormalizedResult


class SearchRequest(BaseModel):
    """Inbound search. Range and source checks happen in ``to_query``."""

    query: str
    location: str | None = None
    radius: float | None = None  # km
    category: str | None = None
    sources: list[str] = []
    limit: int = DEFAULT_LIMIT

    def to_query(self) -> NormalizedQuery:
        return build_query(
            self.query,
            location=self.location,
            radius_km=self.radius,
            category=self.category,
            sources=self.sources,
            limit=self.limit,
        )


class CoordinatesRead(BaseModel):
    lat: float
    lng: float


class ReviewSummaryRead(BaseModel):
    count: int
    avg_rating: float


class BusinessResult(BaseModel):
    source_id: str
    source_record_id: str
    name: str
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    price_tier: str | None = None
    categories: list[str] = []
    coordinates: CoordinatesRead | None = None
    photos: list[str] = []
    hours: dict[str, str] | None = None
    review_summary: ReviewSummaryRead | None = None

    @computed_field
    @property
    def id(self) -> str:
        return f"{self.source_id}_{self.source_record_id}"

    @classmethod
    def from_result(cls, result: NormalizedResult) -> BusinessResult:
        return cls.model_validate(result.to_dict())


class SearchResponse(BaseModel):
    search_id: UUID
    query: str
    location: str | None = None
    total_results: int
    results: list[BusinessResult]
    sources: list[str]
    response_time_ms: int
    cached: bool
    expires_at: datetime


class SearchHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    query: str
    location: str | None = None
    total_results: int
    sources: list[str]
    response_time_ms: int
    created_at: datetime
    expires_at: datetime
