"""Deduplicate, merge and rank normalized provider results.

Pure functions only: input records are never mutated, merged records are
built with ``dataclasses.replace``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace

from finder.providers.base import Coordinates, NormalizedResult

UNKNOWN_LOCATION = "unknown"
LOCATION_PRECISION = 3  # ~100 m

# ── Relevance weights ──────────────────────────────────────────────

PHONE_WEIGHT = 10
WEBSITE_WEIGHT = 10
RATING_WEIGHT = 5
PRICE_TIER_WEIGHT = 3
HOURS_WEIGHT = 8
CATEGORY_WEIGHT, CATEGORY_CAP = 2, 6
PHOTO_WEIGHT, PHOTO_CAP = 2, 10
REVIEWS_PER_POINT, REVIEW_CAP = 10, 20

_SINGULAR_FIELDS = (
    "address",
    "phone",
    "website",
    "rating",
    "price_tier",
    "hours",
    "review_summary",
)


def approx_location(coordinates: Coordinates | None) -> str:
    if coordinates is None:
        return UNKNOWN_LOCATION
    # + 0.0 folds -0.0 into 0.0 so both sides of the equator/meridian agree
    lat = round(coordinates.lat, LOCATION_PRECISION) + 0.0
    lng = round(coordinates.lng, LOCATION_PRECISION) + 0.0
    return f"{lat:.{LOCATION_PRECISION}f},{lng:.{LOCATION_PRECISION}f}"


def dedup_key(result: NormalizedResult) -> str:
    """Records sharing this key are treated as the same business."""
    return f"{result.name.strip().lower()}_{approx_location(result.coordinates)}"


def _is_empty(value: object) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, Mapping) and not value


def _union(first: Iterable[str], second: Iterable[str]) -> tuple[str, ...]:
    """Ordered union with exact-string dedup."""
    return tuple(dict.fromkeys([*first, *second]))


def merge_pair(existing: NormalizedResult, incoming: NormalizedResult) -> NormalizedResult:
    """First non-empty value wins for singular fields, plural fields are unioned."""
    updates: dict[str, object] = {
        name: getattr(incoming, name)
        for name in _SINGULAR_FIELDS
        if _is_empty(getattr(existing, name)) and not _is_empty(getattr(incoming, name))
    }
    updates["categories"] = _union(existing.categories, incoming.categories)
    updates["photos"] = _union(existing.photos, incoming.photos)
    return replace(existing, **updates)


def relevance_score(result: NormalizedResult) -> float:
    score = 0.0
    if result.phone:
        score += PHONE_WEIGHT
    if result.website:
        score += WEBSITE_WEIGHT
    if result.rating is not None:
        score += RATING_WEIGHT
    if result.price_tier is not None:
        score += PRICE_TIER_WEIGHT
    score += min(CATEGORY_WEIGHT * len(result.categories), CATEGORY_CAP)
    if result.hours:
        score += HOURS_WEIGHT
    score += min(PHOTO_WEIGHT * len(result.photos), PHOTO_CAP)
    if result.review_summary is not None:
        score += min(result.review_summary.count / REVIEWS_PER_POINT, REVIEW_CAP)
    return score


def merge_results(results: Sequence[NormalizedResult], limit: int) -> list[NormalizedResult]:
    """Merge duplicates, rank by relevance and truncate to ``limit``.

    Deterministic for a given input order: merged records keep the position
    of their first occurrence and ``sorted`` is stable, so equal scores keep
    that order.
    """
    merged: dict[str, NormalizedResult] = {}
    for result in results:
        key = dedup_key(result)
        current = merged.get(key)
        merged[key] = result if current is None else merge_pair(current, result)

    ranked = sorted(merged.values(), key=relevance_score, reverse=True)
    return ranked[:limit]
