"""Yelp Fusion business search adapter."""

from __future__ import annotations

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
    ProviderID,
    ReviewSummary,
    read_json,
    send,
)

logger = get_logger(__name__)

MAX_RADIUS_M = 40_000
PAGE_SIZE = 50
DEFAULT_LOCATION = "United States"

_PRICE_SYMBOLS = {
    "$": PriceTier.INEXPENSIVE,
    "$$": PriceTier.MODERATE,
    "$$$": PriceTier.EXPENSIVE,
    "$$$$": PriceTier.VERY_EXPENSIVE,
}


class YelpAdapter:
    """Listings/reviews provider backed by /businesses/search."""

    provider_id = ProviderID.YELP
    requires_api_key = True

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        settings = get_settings()
        self.base_url = base_url or settings.yelp_base_url
        self.timeout = timeout or settings.provider_timeout_seconds

    async def search(
        self,
        query_text: str,
        location: str | None = None,
        radius_km: float | None = None,
        api_key: str | None = None,
    ) -> list[NormalizedResult]:
        if not api_key:
            raise ProviderAuthError(self.provider_id, "Yelp API key not configured")

        # Yelp requires either a location or coordinates
        params: dict[str, Any] = {
            "term": query_text,
            "location": location or DEFAULT_LOCATION,
            "limit": PAGE_SIZE,
        }
        if radius_km:
            params["radius"] = int(min(radius_km * 1000, MAX_RADIUS_M))

        logger.info("yelp_search", term=query_text, location=params["location"])

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await send(
                client,
                self.provider_id,
                "GET",
                f"{self.base_url}/businesses/search",
                params=params,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        data = read_json(resp, self.provider_id)

        results = [self._to_result(b) for b in data.get("businesses", [])]
        logger.info("yelp_results", result_count=len(results))
        return results

    def _to_result(self, business: dict) -> NormalizedResult:
        coords = business.get("coordinates") or {}
        location = business.get("location") or {}
        display_address = location.get("display_address") or []
        hours = business.get("hours") or []
        rating = business.get("rating")
        review_count = business.get("review_count")

        return NormalizedResult(
            source_id=self.provider_id,
            source_record_id=business["id"],
            name=business.get("name", ""),
            address=", ".join(display_address) or None,
            phone=business.get("display_phone") or None,
            website=business.get("url") or None,
            rating=rating,
            price_tier=_PRICE_SYMBOLS.get(business.get("price") or ""),
            categories=tuple(c["title"] for c in business.get("categories") or [] if c.get("title")),
            coordinates=(
                Coordinates(lat=coords["latitude"], lng=coords["longitude"])
                if coords.get("latitude") is not None and coords.get("longitude") is not None
                else None
            ),
            photos=tuple(business.get("photos") or ()),
            hours=convert_hours(hours[0]["open"]) if hours and hours[0].get("open") else None,
            review_summary=(
                ReviewSummary(count=review_count, avg_rating=rating or 0.0)
                if review_count is not None
                else None
            ),
        )


def convert_hours(open_slots: list[dict]) -> dict[str, str]:
    """Yelp `open` slots (day 0 = Monday) -> weekday map; unlisted days are Closed."""
    hours = {day: "Closed" for day in WEEKDAYS}
    for slot in open_slots:
        day = slot.get("day")
        if isinstance(day, int) and 0 <= day < len(WEEKDAYS):
            hours[WEEKDAYS[day]] = f"{format_time(slot['start'])} - {format_time(slot['end'])}"
    return hours


def format_time(value: str) -> str:
    """'1730' -> '5:30 PM'. Anything not HHMM is returned unchanged."""
    if len(value) != 4 or not value.isdigit():
        return value
    hours = int(value[:2])
    suffix = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{value[2:]} {suffix}"
