"""SQLAlchemy models package."""

from finder.models.api_key import ApiKey
from finder.models.business_search import BusinessSearch, SearchStatus
from finder.models.rate_limit import RateLimit

__all__ = ["ApiKey", "BusinessSearch", "RateLimit", "SearchStatus"]
