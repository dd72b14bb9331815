"""
Geocoding module for the rep route planner.

This module provides functionality for:
- Resolving free-text, often malformed addresses to coordinates
- Generating fallback query variations for an address
- Pacing and retrying requests to the Nominatim geocoder
- Caching every result (including failures) durably

Main classes:
- AddressResolver: High-level, order-preserving batch resolver
- NominatimClient: Nominatim /search wrapper with rate limiting and retries
- GeocodeCache: Address -> result map persisted as a single JSON blob
- TokenBucketRateLimiter: Rate limiting implementation

Errors:
- GeocodingError: Base class for resolution failures
- AddressNotFoundError / OutOfRegionError: No usable match
- UpstreamError / RateLimitedError: Transient upstream failures
- RateLimitError: Local limiter could not grant a request slot
- CacheError: Cache persistence failures
"""

from .address_resolver import AddressResolver
from .address_variations import get_address_variations, parse_coordinate_text
from .geocoding_cache import GeocodeCache, JsonBlobStore
from .geocoding_client import NominatimClient
from .geocoding_config import ARIZONA_BOUNDS, BoundingBox, GeocoderConfig
from .geocoding_errors import (
    AddressNotFoundError,
    CacheError,
    GeocodingError,
    OutOfRegionError,
    RateLimitedError,
    RateLimitError,
    UpstreamError,
)
from .geocoding_models import Coordinate, GeocodeResult
from .geocoding_rate_limiter import TokenBucketRateLimiter

__all__ = [
    # Main classes
    "AddressResolver",
    "NominatimClient",
    "GeocodeCache",
    "JsonBlobStore",
    "TokenBucketRateLimiter",
    "GeocoderConfig",
    "BoundingBox",
    "ARIZONA_BOUNDS",

    # Models
    "Coordinate",
    "GeocodeResult",

    # Helpers
    "get_address_variations",
    "parse_coordinate_text",

    # Errors
    "GeocodingError",
    "AddressNotFoundError",
    "OutOfRegionError",
    "UpstreamError",
    "RateLimitedError",
    "RateLimitError",
    "CacheError",
]
