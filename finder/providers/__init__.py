"""Business-data provider adapters, keyed by ProviderID."""

from finder.providers.base import (
    NormalizedResult,
    ProviderAdapter,
    ProviderError,
    ProviderID,
    SourceInfo,
)
from finder.providers.google_places import GooglePlacesAdapter
from finder.providers.openstreetmap import OpenStreetMapAdapter
from finder.providers.yelp import YelpAdapter

SOURCE_CATALOG: tuple[SourceInfo, ...] = (
    SourceInfo(
        id=ProviderID.GOOGLE_PLACES,
        name="Google Places",
        description="Comprehensive business data from Google Maps",
        requires_api_key=True,
        free_quota="1,500 requests/day",
    ),
    SourceInfo(
        id=ProviderID.YELP,
        name="Yelp",
        description="Business reviews and ratings from Yelp",
        requires_api_key=True,
        free_quota="5,000 requests/day",
    ),
    SourceInfo(
        id=ProviderID.OPENSTREETMAP,
        name="OpenStreetMap",
        description="Free, open-source map data",
        requires_api_key=False,
        free_quota="Unlimited (fair use)",
    ),
)


def build_adapters() -> dict[ProviderID, ProviderAdapter]:
    """One adapter instance per provider, configured from settings."""
    return {
        ProviderID.GOOGLE_PLACES: GooglePlacesAdapter(),
        ProviderID.YELP: YelpAdapter(),
        ProviderID.OPENSTREETMAP: OpenStreetMapAdapter(),
    }


__all__ = [
    "SOURCE_CATALOG",
    "GooglePlacesAdapter",
    "NormalizedResult",
    "OpenStreetMapAdapter",
    "ProviderAdapter",
    "ProviderError",
    "ProviderID",
    "SourceInfo",
    "YelpAdapter",
    "build_adapters",
]
