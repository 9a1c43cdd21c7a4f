"""Provider adapter contract and the normalized business record.

Each adapter turns one normalized query into one external API call and
returns `NormalizedResult` records.  Adapters are independent: a failing
provider never affects the others.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import httpx

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class ProviderID(StrEnum):
    """The fixed set of business-data providers."""

    GOOGLE_PLACES = "google_places"
    YELP = "yelp"
    OPENSTREETMAP = "openstreetmap"


class PriceTier(StrEnum):
    FREE = "free"
    INEXPENSIVE = "inexpensive"
    MODERATE = "moderate"
    EXPENSIVE = "expensive"
    VERY_EXPENSIVE = "very_expensive"


# ── Errors ──────────────────────────────────────────────────────────


class ProviderError(Exception):
    """Any adapter failure (transport, upstream error, bad payload)."""

    def __init__(self, provider: str, cause: str) -> None:
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {cause}")


class ProviderQuotaError(ProviderError):
    """Upstream quota or rate limit exhausted."""


class ProviderAuthError(ProviderError):
    """Missing or rejected API key."""


class ProviderTimeout(ProviderError):
    """The upstream call exceeded the adapter timeout."""


# ── Result model ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class ReviewSummary:
    count: int
    avg_rating: float


@dataclass(frozen=True)
class NormalizedResult:
    """One business/listing record, provider-agnostic. Never mutated."""

    source_id: ProviderID
    source_record_id: str
    name: str
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    price_tier: PriceTier | None = None
    categories: tuple[str, ...] = ()
    coordinates: Coordinates | None = None
    photos: tuple[str, ...] = ()
    hours: Mapping[str, str] | None = None
    review_summary: ReviewSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable form, as stored in the search ledger."""
        return {
            "source_id": self.source_id.value,
            "source_record_id": self.source_record_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "website": self.website,
            "rating": self.rating,
            "price_tier": self.price_tier.value if self.price_tier else None,
            "categories": list(self.categories),
            "coordinates": (
                {"lat": self.coordinates.lat, "lng": self.coordinates.lng}
                if self.coordinates
                else None
            ),
            "photos": list(self.photos),
            "hours": dict(self.hours) if self.hours is not None else None,
            "review_summary": (
                {
                    "count": self.review_summary.count,
                    "avg_rating": self.review_summary.avg_rating,
                }
                if self.review_summary
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NormalizedResult:
        coords = data.get("coordinates")
        reviews = data.get("review_summary")
        tier = data.get("price_tier")
        return cls(
            source_id=ProviderID(data["source_id"]),
            source_record_id=data["source_record_id"],
            name=data["name"],
            address=data.get("address"),
            phone=data.get("phone"),
            website=data.get("website"),
            rating=data.get("rating"),
            price_tier=PriceTier(tier) if tier else None,
            categories=tuple(data.get("categories") or ()),
            coordinates=Coordinates(coords["lat"], coords["lng"]) if coords else None,
            photos=tuple(data.get("photos") or ()),
            hours=dict(data["hours"]) if data.get("hours") is not None else None,
            review_summary=(
                ReviewSummary(count=reviews["count"], avg_rating=reviews["avg_rating"])
                if reviews
                else None
            ),
        )


# ── Adapter contract ───────────────────────────────────────────────


class ProviderAdapter(Protocol):
    provider_id: ProviderID
    requires_api_key: bool

    async def search(
        self,
        query_text: str,
        location: str | None = None,
        radius_km: float | None = None,
        api_key: str | None = None,
    ) -> list[NormalizedResult]:
        """Run one search against the provider.

        Raises a ProviderError subclass on failure; ProviderQuotaError is
        kept distinct so callers can tell upstream throttling apart.
        """
        ...


@dataclass(frozen=True)
class SourceInfo:
    """Static catalogue entry describing a provider to API consumers."""

    id: ProviderID
    name: str
    description: str
    requires_api_key: bool
    free_quota: str


# ── HTTP helpers shared by adapters ────────────────────────────────


async def send(
    client: httpx.AsyncClient,
    provider: ProviderID,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Issue a request and translate transport/HTTP failures to ProviderErrors."""
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise ProviderTimeout(provider, "request timed out") from e
    except httpx.HTTPError as e:
        raise ProviderError(provider, f"transport error: {e}") from e

    if resp.status_code == 429:
        raise ProviderQuotaError(provider, "upstream rate limit exceeded")
    if resp.status_code in (401, 403):
        raise ProviderAuthError(provider, "API key rejected")
    if resp.status_code >= 400:
        raise ProviderError(provider, f"upstream returned HTTP {resp.status_code}")
    return resp


def read_json(resp: httpx.Response, provider: ProviderID) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise ProviderError(provider, "malformed JSON payload") from e


def capitalize_words(value: str) -> str:
    """'gas_station' -> 'Gas Station'."""
    return " ".join(word.capitalize() for word in value.replace("_", " ").split())
