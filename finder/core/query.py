"""Normalized search query and its content hash.

The hash is the cache key for the search ledger, so it must depend only on
the fields that change what a provider returns.  ``limit`` is applied after
merging and is deliberately left out.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable
from dataclasses import dataclass

from finder.core.errors import ValidationError
from finder.providers.base import ProviderID

MIN_RADIUS_KM = 0.1
MAX_RADIUS_KM = 50.0
MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_LIMIT = 20

_WORD = re.compile(r"\w")


@dataclass(frozen=True)
class NormalizedQuery:
    text: str
    location: str | None = None
    radius_km: float | None = None
    category: str | None = None
    sources: tuple[ProviderID, ...] = ()
    limit: int = DEFAULT_LIMIT


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_query(
    text: str,
    *,
    location: str | None = None,
    radius_km: float | None = None,
    category: str | None = None,
    sources: Iterable[str] = (),
    limit: int | None = None,
) -> NormalizedQuery:
    """Validate raw search input. Raises ValidationError, never touches I/O."""
    cleaned = _clean(text)
    if not cleaned:
        raise ValidationError("Search query must not be empty")
    if not _WORD.search(cleaned):
        raise ValidationError("Search query must contain at least one letter or digit")

    if radius_km is not None and not MIN_RADIUS_KM <= radius_km <= MAX_RADIUS_KM:
        raise ValidationError(
            f"radius_km must be between {MIN_RADIUS_KM} and {MAX_RADIUS_KM}"
        )

    if limit is None:
        limit = DEFAULT_LIMIT
    if not MIN_LIMIT <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}")

    raw_sources = list(sources)
    if len(raw_sources) > 1:
        raise ValidationError("Only one source can be searched at a time")
    try:
        provider_ids = tuple(ProviderID(s) for s in raw_sources)
    except ValueError:
        valid = ", ".join(p.value for p in ProviderID)
        raise ValidationError(f"Unknown source {raw_sources[0]!r}. Valid sources: {valid}") from None

    return NormalizedQuery(
        text=cleaned,
        location=_clean(location),
        radius_km=float(radius_km) if radius_km is not None else None,
        category=_clean(category),
        sources=provider_ids,
        limit=limit,
    )


def _fold(value: str | None) -> str | None:
    return value.strip().casefold() if value else None


def query_hash(query: NormalizedQuery) -> str:
    """SHA-256 over a canonical JSON form of the query (excluding limit)."""
    canonical = {
        "text": _fold(query.text),
        "location": _fold(query.location),
        "category": _fold(query.category),
        "radius_km": query.radius_km,
        "sources": sorted(s.value for s in query.sources),
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()
