"""
Nominatim search client with rate limiting and bounded retries.

Wraps the public OpenStreetMap geocoder: adds the regional disambiguator to
queries, paces requests through a token bucket, retries transient failures
with exponential backoff and rejects matches outside the serviced region.
"""

import re
import time
from typing import Callable, Dict, List, Optional

import requests
from pydantic import BaseModel, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..cancellation import CancellationToken, OperationCancelledError, check_cancelled
from ..config.logger_module import log_debug, log_info, log_warning
from .geocoding_config import GeocoderConfig
from .geocoding_errors import (
    AddressNotFoundError,
    GeocodingError,
    OutOfRegionError,
    RateLimitedError,
    UpstreamError,
)
from .geocoding_models import Coordinate
from .geocoding_rate_limiter import TokenBucketRateLimiter


class NominatimPlace(BaseModel):
    """One entry of a Nominatim /search response."""
    lat: float
    lon: float
    display_name: Optional[str] = None


class NominatimClient:
    """
    Forward geocoder backed by Nominatim's /search endpoint.

    search() returns a Coordinate or raises:
    - AddressNotFoundError: no result for the query
    - OutOfRegionError: a result outside the configured bounding box
    - UpstreamError / RateLimitedError: still failing after the retry budget
    """

    RETRYABLE_STATUS_CODES = (429, 503)

    def __init__(self,
                 config: GeocoderConfig = None,
                 rate_limiter: TokenBucketRateLimiter = None,
                 session: requests.Session = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the Nominatim client.

        Args:
            config: Geocoder settings (loaded from environment if not provided)
            rate_limiter: Shared limiter; built from config.min_request_interval if omitted
            session: HTTP session (a new one is created if omitted)
            sleep: Function used for retry backoff waits when no cancel token is given
        """
        self.config = config or GeocoderConfig.from_env()

        self._rate_limiter = rate_limiter or TokenBucketRateLimiter(
            rate_per_second=self.config.requests_per_second,
            burst_capacity=1,
        )
        self._sleep = sleep

        self._session = session or requests.Session()
        self._session.headers.update({
            'Accept': 'application/json',
            'User-Agent': self.config.user_agent,
        })

        self._region_pattern = re.compile(
            rf',\s*({re.escape(self.config.region_abbreviation)}|'
            rf'{re.escape(self.config.region_name)})\b',
            re.IGNORECASE,
        )

        log_info(
            f"NominatimClient initialized (url={self.config.search_url}, "
            f"max_retries={self.config.max_retries})"
        )

    def build_query(self, query: str) -> str:
        """
        Add the regional disambiguator and apply known locality rewrites.

        Examples:
            "425 N Vineyard, Mesa" -> "425 N Vineyard, Mesa, Arizona"
            "123 Main St, Corona de Tucson, AZ" -> "123 main st, Vail, AZ"
        """
        final_query = query
        if not self._region_pattern.search(final_query):
            final_query += f", {self.config.region_name}"

        lowered = final_query.lower()
        for locality, replacement in self.config.locality_rewrites.items():
            if locality in lowered:
                street_part = lowered.split(locality)[0].strip()
                street_part = re.sub(r',$', '', street_part).strip()
                final_query = f"{street_part}, {replacement}"
                break

        return final_query

    def search(self,
               query: str,
               cancel_token: Optional[CancellationToken] = None) -> Coordinate:
        """
        Geocode one query string.

        Args:
            query: Candidate address text
            cancel_token: Optional token checked before every attempt

        Returns:
            Coordinate of the first match inside the region

        Raises:
            AddressNotFoundError: No match, or match outside the region
            UpstreamError: Upstream kept failing after all retries
            OperationCancelledError: The token fired
        """
        if not query or not query.strip():
            raise AddressNotFoundError("Empty query")

        final_query = self.build_query(query)

        retryer = Retrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(multiplier=self.config.initial_backoff_seconds, exp_base=2),
            retry=retry_if_exception_type(UpstreamError),
            sleep=self._backoff_sleep(cancel_token),
            before_sleep=self._log_retry,
            reraise=True,
        )

        places = retryer(self._request_places, final_query, cancel_token)

        if not places:
            raise AddressNotFoundError("Address not found")

        place = places[0]
        if not self.config.bounds.contains(place.lat, place.lon):
            log_debug(
                f"Match for '{final_query}' at ({place.lat}, {place.lon}) "
                f"is outside {self.config.region_name}"
            )
            raise OutOfRegionError(f"Location found outside of {self.config.region_name}")

        log_debug(f"Geocoded '{final_query}' to ({place.lat}, {place.lon})")
        return Coordinate(lat=place.lat, lon=place.lon)

    def _request_places(self,
                        final_query: str,
                        cancel_token: Optional[CancellationToken]) -> List[NominatimPlace]:
        """Issue a single paced HTTP request and parse the result list."""
        check_cancelled(cancel_token)
        self._rate_limiter.wait_for_token(cancel_token=cancel_token)

        params = {"q": final_query, "format": "json", "limit": 1}

        try:
            log_debug(f"GET {self.config.search_url} q='{final_query}'")
            response = self._session.get(
                self.config.search_url,
                params=params,
                timeout=self.config.request_timeout,
            )
        except requests.exceptions.Timeout:
            raise UpstreamError(f"Request timed out after {self.config.request_timeout}s")
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Network error: {e}")

        if response.status_code in self.RETRYABLE_STATUS_CODES:
            raise RateLimitedError(
                f"API status {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )
        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                f"API status {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            raise GeocodingError("Malformed response from geocoder")

        if not isinstance(payload, list):
            raise GeocodingError("Malformed response from geocoder")

        try:
            return [NominatimPlace.model_validate(item) for item in payload]
        except ValidationError as e:
            raise GeocodingError(f"Malformed response from geocoder: {e.error_count()} error(s)")

    def _backoff_sleep(self,
                       cancel_token: Optional[CancellationToken]) -> Callable[[float], None]:
        """Retry wait that wakes and raises as soon as the token fires."""
        if cancel_token is None:
            return self._sleep

        def sleep(seconds: float) -> None:
            if cancel_token.wait(seconds):
                raise OperationCancelledError(cancel_token.reason or "Operation cancelled")

        return sleep

    def _log_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception()
        log_warning(
            f"Geocoder request failed ({error}). Retrying in "
            f"{retry_state.next_action.sleep:.1f}s "
            f"(attempt {retry_state.attempt_number}/{self.config.max_retries + 1})"
        )

    def get_rate_limit_status(self) -> Dict[str, float]:
        """
        Get current rate limiting status.

        Returns:
            Dictionary with available tokens and wait time
        """
        return {
            "available_tokens": self._rate_limiter.get_available_tokens(),
            "wait_time_seconds": self._rate_limiter.get_wait_time(),
        }
