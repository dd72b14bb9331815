"""
Custom exceptions for the geocoding module.

Resolution failures are expected outcomes that end up cached as negative
results; these exceptions carry the reason between the upstream client and
the resolver, which turns them into GeocodeResult values.
"""

from typing import Optional


class GeocodingError(Exception):
    """Base class for failures while resolving an address."""

    reason = "geocoding_error"


class AddressNotFoundError(GeocodingError):
    """Raised when the geocoder returns no match for a query."""

    reason = "not_found"


class OutOfRegionError(AddressNotFoundError):
    """Raised when the geocoder's match falls outside the serviced region."""

    reason = "out_of_region"


class UpstreamError(GeocodingError):
    """Raised on non-2xx responses and network failures (retryable)."""

    reason = "upstream_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(UpstreamError):
    """Raised when the geocoder answers 429 or 503."""

    reason = "rate_limited"


class RateLimitError(GeocodingError):
    """Raised when the local rate limiter cannot grant a request slot."""

    reason = "rate_limiter"


class CacheError(Exception):
    """Raised on geocode cache read/write failures."""
    pass
