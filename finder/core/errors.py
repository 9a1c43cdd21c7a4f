"""Business finder error taxonomy.

Every error carries the HTTP status it maps to.  Client-attributable errors
(4xx) raised after admission count as quota violations; server-attributable
ones (5xx) never do.
"""

from __future__ import annotations

from datetime import datetime


class SearchError(Exception):
    """Base class for errors surfaced by the business finder."""

    status_code: int = 500
    code: str = "search_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    def to_payload(self) -> dict:
        """JSON body returned to API clients."""
        return {"error": self.code, "detail": self.message}


class ValidationError(SearchError):
    """Malformed query, rejected before any side effect."""

    status_code = 400
    code = "validation_error"


class NotFound(SearchError):
    """Cached search or history entry missing or expired."""

    status_code = 404
    code = "not_found"


class RateLimited(SearchError):
    """Daily quota exhausted or identity temporarily blocked."""

    status_code = 429
    code = "rate_limited"

    def __init__(
        self,
        remaining: int,
        reset_time: datetime,
        message: str = "Rate limit exceeded. Please try again later.",
    ) -> None:
        self.remaining = remaining
        self.reset_time = reset_time
        super().__init__(message)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["remaining"] = self.remaining
        payload["reset_time"] = self.reset_time.isoformat()
        return payload


class ProviderUnavailable(SearchError):
    """The selected provider could not serve the search. Not retried."""

    status_code = 503
    code = "provider_unavailable"

    def __init__(self, provider: str, cause: str) -> None:
        self.provider = provider
        self.cause = cause
        super().__init__(f"Search failed for {provider}: {cause}")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["provider"] = self.provider
        payload["cause"] = self.cause
        return payload
