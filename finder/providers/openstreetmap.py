"""OpenStreetMap adapter: Nominatim geocoding plus Overpass POI search.

No API key. With a location the adapter geocodes it and runs an Overpass
``around`` query for named amenities and shops; without one (or when
geocoding fails) it falls back to a Nominatim name search filtered to
business-like classes.
"""

from __future__ import annotations

import re

import httpx

from finder.config import get_settings
from finder.core.logging import get_logger
from finder.providers.base import (
    WEEKDAYS,
    Coordinates,
    NormalizedResult,
    ProviderError,
    ProviderID,
    capitalize_words,
    read_json,
    send,
)

logger = get_logger(__name__)

MAX_RESULTS = 20
MAX_CATEGORIES = 3
DEFAULT_RADIUS_KM = 5.0
OVERPASS_TIMEOUT_S = 25

BUSINESS_CLASSES = frozenset(
    {"amenity", "shop", "office", "craft", "healthcare", "leisure", "tourism"}
)

_DAY_CODES = ("Mo", "Tu", "We", "Th", "Fr", "Sa", "Su")

# Overpass QL interpolates the name into a regex literal
_UNSAFE_CHARS = re.compile(r"[^\w\s&'-]")
_HOURS_RULE = re.compile(r"^(\w{2}(?:-\w{2})?)\s+(\d{2}:\d{2}-\d{2}:\d{2})$")


class OpenStreetMapAdapter:
    """Open-community-data provider."""

    provider_id = ProviderID.OPENSTREETMAP
    requires_api_key = False

    def __init__(
        self,
        nominatim_url: str | None = None,
        overpass_url: str | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
    ) -> None:
        settings = get_settings()
        self.nominatim_url = nominatim_url or settings.nominatim_url
        self.overpass_url = overpass_url or settings.overpass_url
        self.timeout = timeout or settings.provider_timeout_seconds
        self.headers = {"User-Agent": user_agent or settings.osm_user_agent}

    async def search(
        self,
        query_text: str,
        location: str | None = None,
        radius_km: float | None = None,
        api_key: str | None = None,
    ) -> list[NormalizedResult]:
        terms = sanitize_terms(query_text)
        if not terms:
            raise ProviderError(self.provider_id, "query has no searchable terms")

        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            point = await self._geocode(client, location) if location else None
            if point:
                results = await self._search_around(client, terms, point, radius_km or DEFAULT_RADIUS_KM)
            else:
                results = await self._search_by_name(client, terms)

        logger.info("openstreetmap_results", result_count=len(results), geocoded=point is not None)
        return results

    async def _geocode(self, client: httpx.AsyncClient, location: str) -> Coordinates | None:
        try:
            resp = await send(
                client,
                self.provider_id,
                "GET",
                self.nominatim_url,
                params={"q": location, "format": "json", "limit": 1, "addressdetails": 1},
            )
            data = read_json(resp, self.provider_id)
        except ProviderError as e:
            logger.warning("openstreetmap_geocode_failed", location=location, error=e.cause)
            return None

        if not data:
            return None
        return Coordinates(lat=float(data[0]["lat"]), lng=float(data[0]["lon"]))

    async def _search_around(
        self,
        client: httpx.AsyncClient,
        terms: str,
        point: Coordinates,
        radius_km: float,
    ) -> list[NormalizedResult]:
        around = f"around:{int(radius_km * 1000)},{point.lat},{point.lng}"
        selectors = "\n".join(
            f'  {kind}["name"~"{terms}",i]["{tag}"]({around});'
            for tag in ("amenity", "shop")
            for kind in ("node", "way", "relation")
        )
        overpass_query = f"[out:json][timeout:{OVERPASS_TIMEOUT_S}];\n(\n{selectors}\n);\nout center meta;"

        resp = await send(
            client,
            self.provider_id,
            "POST",
            self.overpass_url,
            content=overpass_query,
            headers={"Content-Type": "text/plain"},
        )
        data = read_json(resp, self.provider_id)

        elements = [e for e in data.get("elements", []) if (e.get("tags") or {}).get("name")]
        return [self._from_element(e) for e in elements[:MAX_RESULTS]]

    async def _search_by_name(self, client: httpx.AsyncClient, terms: str) -> list[NormalizedResult]:
        resp = await send(
            client,
            self.provider_id,
            "GET",
            self.nominatim_url,
            params={
                "q": terms,
                "format": "json",
                "limit": MAX_RESULTS,
                "addressdetails": 1,
                "extratags": 1,
            },
        )
        data = read_json(resp, self.provider_id)

        places = [p for p in data if p.get("class") in BUSINESS_CLASSES]
        return [self._from_place(p) for p in places[:MAX_RESULTS]]

    def _from_element(self, element: dict) -> NormalizedResult:
        tags = element["tags"]
        # ways and relations only carry a computed centre
        lat = element.get("lat", (element.get("center") or {}).get("lat"))
        lng = element.get("lon", (element.get("center") or {}).get("lon"))

        return NormalizedResult(
            source_id=self.provider_id,
            source_record_id=f"{element['type']}/{element['id']}",
            name=tags["name"],
            address=address_from_tags(tags),
            phone=tags.get("phone") or tags.get("contact:phone"),
            website=tags.get("website") or tags.get("contact:website"),
            categories=tuple(categories_from_tags(tags)),
            coordinates=Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None,
            hours=parse_opening_hours(tags.get("opening_hours")),
        )

    def _from_place(self, place: dict) -> NormalizedResult:
        extratags = place.get("extratags") or {}
        display_name = place.get("display_name", "")

        return NormalizedResult(
            source_id=self.provider_id,
            source_record_id=f"{place['osm_type']}/{place['osm_id']}",
            name=display_name.split(",")[0].strip(),
            address=display_name or None,
            phone=extratags.get("phone") or extratags.get("contact:phone"),
            website=extratags.get("website") or extratags.get("contact:website"),
            categories=(capitalize_words(place["type"]),) if place.get("type") else (),
            coordinates=Coordinates(lat=float(place["lat"]), lng=float(place["lon"])),
            hours=parse_opening_hours(extratags.get("opening_hours")),
        )


def sanitize_terms(text: str) -> str:
    return " ".join(_UNSAFE_CHARS.sub(" ", text).split())


def address_from_tags(tags: dict[str, str]) -> str | None:
    parts = [
        tags.get(key)
        for key in ("addr:housenumber", "addr:street", "addr:city", "addr:postcode", "addr:country")
    ]
    return ", ".join(p for p in parts if p) or None


def categories_from_tags(tags: dict[str, str]) -> list[str]:
    categories = []
    if tags.get("amenity"):
        categories.append(capitalize_words(tags["amenity"]))
    if tags.get("shop"):
        categories.append(capitalize_words(tags["shop"]))
    if tags.get("cuisine"):
        categories.append(f"{capitalize_words(tags['cuisine'])} Cuisine")
    return categories[:MAX_CATEGORIES]


def parse_opening_hours(value: str | None) -> dict[str, str] | None:
    """Parse the simple ``Mo-Fr 09:00-17:00; Sa 09:00-12:00`` form.

    Rules that don't match (public holidays, month ranges, ``24/7``...) are
    ignored. Returns None when nothing could be parsed.
    """
    if not value:
        return None

    hours: dict[str, str] = {}
    for rule in value.split(";"):
        match = _HOURS_RULE.match(rule.strip())
        if not match:
            continue
        days, time_range = match.groups()
        first, _, last = days.partition("-")
        if first not in _DAY_CODES or (last and last not in _DAY_CODES):
            continue
        start = _DAY_CODES.index(first)
        end = _DAY_CODES.index(last) if last else start
        for i in range(start, end + 1):
            hours[WEEKDAYS[i]] = time_range

    return hours or None
