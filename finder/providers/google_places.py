"""Google Places adapter: text search plus per-place details."""

from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx

from finder.config import get_settings
from finder.core.logging import get_logger
from finder.providers.base import (
    WEEKDAYS,
    Coordinates,
    NormalizedResult,
    PriceTier,
    ProviderAuthError,
    ProviderError,
    ProviderID,
    ProviderQuotaError,
    ReviewSummary,
    capitalize_words,
    read_json,
    send,
)

logger = get_logger(__name__)

MAX_RADIUS_M = 50_000
MAX_CATEGORIES = 3
DETAIL_FIELDS = "international_phone_number,website,opening_hours"

_PRICE_LEVELS = [
    PriceTier.FREE,
    PriceTier.INEXPENSIVE,
    PriceTier.MODERATE,
    PriceTier.EXPENSIVE,
    PriceTier.VERY_EXPENSIVE,
]

_TYPE_LABELS = {
    "restaurant": "Restaurant",
    "food": "Food & Beverage",
    "store": "Retail Store",
    "health": "Healthcare",
    "finance": "Financial Services",
    "lodging": "Accommodation",
    "gas_station": "Gas Station",
    "car_repair": "Auto Services",
    "beauty_salon": "Beauty & Spa",
    "gym": "Fitness & Sports",
    "school": "Education",
    "hospital": "Healthcare",
    "pharmacy": "Pharmacy",
}

_GENERIC_TYPES = ("establishment", "point_of_interest")

_HOURS_RE = re.compile(r":\s*(.+)")


class GooglePlacesAdapter:
    """Map-places provider backed by the Places text search API."""

    provider_id = ProviderID.GOOGLE_PLACES
    requires_api_key = True

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        settings = get_settings()
        self.base_url = base_url or settings.google_places_base_url
        self.timeout = timeout or settings.provider_timeout_seconds

    async def search(
        self,
        query_text: str,
        location: str | None = None,
        radius_km: float | None = None,
        api_key: str | None = None,
    ) -> list[NormalizedResult]:
        if not api_key:
            raise ProviderAuthError(self.provider_id, "Google Places API key not configured")

        params: dict[str, Any] = {
            "query": f"{query_text} in {location}" if location else query_text,
            "key": api_key,
            "type": "establishment",
        }
        if radius_km:
            params["radius"] = int(min(radius_km * 1000, MAX_RADIUS_M))

        logger.info("google_places_search", query=params["query"])

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await send(
                client, self.provider_id, "GET", f"{self.base_url}/textsearch/json", params=params
            )
            data = read_json(resp, self.provider_id)

            status = data.get("status")
            if status == "OVER_QUERY_LIMIT":
                raise ProviderQuotaError(self.provider_id, "Google Places API quota exceeded")
            if status == "REQUEST_DENIED":
                raise ProviderAuthError(
                    self.provider_id, data.get("error_message") or "request denied"
                )
            if status != "OK":
                logger.warning("google_places_non_ok_status", status=status)
                return []

            places = data.get("results", [])
            details = await asyncio.gather(
                *(self._place_details(client, place["place_id"], api_key) for place in places)
            )

        results = [self._to_result(place, detail) for place, detail in zip(places, details)]
        logger.info("google_places_results", result_count=len(results))
        return results

    async def _place_details(
        self,
        client: httpx.AsyncClient,
        place_id: str,
        api_key: str,
    ) -> dict | None:
        """Fetch phone/website/hours. A failed details call only loses those fields."""
        try:
            resp = await send(
                client,
                self.provider_id,
                "GET",
                f"{self.base_url}/details/json",
                params={"place_id": place_id, "fields": DETAIL_FIELDS, "key": api_key},
            )
            data = read_json(resp, self.provider_id)
        except ProviderError as e:
            logger.warning("google_place_details_failed", place_id=place_id, error=e.cause)
            return None
        return data.get("result") if data.get("status") == "OK" else None

    def _to_result(self, place: dict, details: dict | None) -> NormalizedResult:
        loc = place.get("geometry", {}).get("location")
        rating = place.get("rating")
        ratings_total = place.get("user_ratings_total")
        details = details or {}
        weekday_text = (details.get("opening_hours") or {}).get("weekday_text")

        return NormalizedResult(
            source_id=self.provider_id,
            source_record_id=place["place_id"],
            name=place.get("name", ""),
            address=place.get("formatted_address"),
            phone=details.get("international_phone_number"),
            website=details.get("website"),
            rating=rating,
            price_tier=price_tier(place.get("price_level")),
            categories=tuple(categories_from_types(place.get("types", []))),
            coordinates=Coordinates(lat=loc["lat"], lng=loc["lng"]) if loc else None,
            photos=tuple(
                f"{self.base_url}/photo?maxwidth=400&photoreference={photo['photo_reference']}"
                for photo in place.get("photos", [])
                if photo.get("photo_reference")
            ),
            hours=hours_from_weekday_text(weekday_text) if weekday_text else None,
            review_summary=(
                ReviewSummary(count=ratings_total, avg_rating=rating or 0.0)
                if ratings_total
                else None
            ),
        )


def price_tier(level: int | None) -> PriceTier | None:
    if level is None or not 0 <= level < len(_PRICE_LEVELS):
        return None
    return _PRICE_LEVELS[level]


def categories_from_types(types: list[str]) -> list[str]:
    labels = [
        _TYPE_LABELS.get(t) or capitalize_words(t)
        for t in types
        if not any(generic in t for generic in _GENERIC_TYPES)
    ]
    return labels[:MAX_CATEGORIES]


def hours_from_weekday_text(weekday_text: list[str]) -> dict[str, str]:
    """['Monday: 9:00 AM – 5:00 PM', ...] -> {'Monday': '9:00 AM – 5:00 PM', ...}"""
    hours = {}
    for day, text in zip(WEEKDAYS, weekday_text):
        match = _HOURS_RE.search(text)
        hours[day] = match.group(1) if match else "Closed"
    return hours
