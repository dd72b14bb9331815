"""
OSRM route client.

Talks to the OSRM /route service and normalises its answer into a RouteInfo
in miles and minutes. Route geometry is a display aid only, so every failure
degrades to None instead of interrupting route planning.
"""

from typing import List, Optional, Sequence

import requests
from pydantic import ValidationError

from ..cancellation import CancellationToken, check_cancelled
from ..config.config_module import get_config, get_float_config
from ..config.logger_module import log_debug, log_info, log_warning
from ..geocoding.geocoding_models import Coordinate
from .routing_errors import RoutingError, RoutingUnavailableError
from .routing_models import METERS_TO_MILES, OsrmRouteResponse, RouteInfo

DEFAULT_OSRM_BASE_URL = "https://router.project-osrm.org"
DEFAULT_TIMEOUT_SECONDS = 10.0


class RouteGeometryFetcher:
    """
    Fetches driving distance, duration and geometry for an ordered stop list.
    """

    def __init__(self,
                 base_url: str = None,
                 profile: str = "driving",
                 request_timeout: float = None,
                 session: requests.Session = None):
        """
        Initialize the route fetcher.

        Args:
            base_url: OSRM server (OSRM_BASE_URL or the public demo server)
            profile: OSRM routing profile
            request_timeout: Seconds to wait for a response (OSRM_TIMEOUT or 10)
            session: HTTP session (a new one is created if omitted)
        """
        self.base_url = (base_url or get_config("OSRM_BASE_URL", DEFAULT_OSRM_BASE_URL)).rstrip('/')
        self.profile = profile
        self.request_timeout = (
            request_timeout if request_timeout is not None
            else get_float_config("OSRM_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
        )
        self._session = session or requests.Session()

        log_info(f"RouteGeometryFetcher initialized (url={self.base_url}, profile={self.profile})")

    @staticmethod
    def format_coordinates(coords: Sequence[Coordinate]) -> str:
        """Convert coordinates to OSRM's 'lon,lat;lon,lat;...' form."""
        return ';'.join(f"{c.lon},{c.lat}" for c in coords)

    def fetch_route(self,
                    coords: Sequence[Coordinate],
                    cancel_token: Optional[CancellationToken] = None) -> Optional[RouteInfo]:
        """
        Fetch the driving route through coords in the given order.

        Args:
            coords: Route points in visiting order
            cancel_token: Optional token checked before the request

        Returns:
            RouteInfo, or None for fewer than two points or any upstream failure

        Raises:
            OperationCancelledError: The token fired
        """
        if len(coords) < 2:
            return None

        check_cancelled(cancel_token)

        try:
            return self._request_route(list(coords))
        except RoutingError as e:
            log_warning(f"Failed to fetch route for {len(coords)} point(s): {e}")
            return None

    def _request_route(self, coords: List[Coordinate]) -> RouteInfo:
        url = f"{self.base_url}/route/v1/{self.profile}/{self.format_coordinates(coords)}"
        params = {"overview": "full", "geometries": "geojson"}

        try:
            log_debug(f"GET {url}")
            response = self._session.get(url, params=params, timeout=self.request_timeout)
        except requests.exceptions.Timeout:
            raise RoutingUnavailableError(f"Request timed out after {self.request_timeout}s")
        except requests.exceptions.RequestException as e:
            raise RoutingUnavailableError(f"Network error: {e}")

        if not 200 <= response.status_code < 300:
            raise RoutingUnavailableError(
                f"OSRM API error {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        try:
            data = OsrmRouteResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RoutingError(f"Malformed response from routing service: {e}")

        if data.code is not None and data.code != "Ok":
            raise RoutingUnavailableError(f"OSRM error {data.code}: {data.message or 'Unknown error'}")
        if not data.routes:
            raise RoutingUnavailableError("No route returned")

        route = data.routes[0]
        info = RouteInfo(
            distance_miles=route.distance * METERS_TO_MILES,
            duration_minutes=route.duration / 60,
            geometry=route.geometry,
            coordinates=coords,
        )
        log_info(
            f"Route through {len(coords)} point(s): "
            f"{info.distance_miles:.1f} mi, {info.duration_minutes:.0f} min"
        )
        return info
