"""
Routing module for the rep route planner.

Main classes:
- RouteGeometryFetcher: OSRM /route client returning RouteInfo or None
- RouteInfo: Distance (miles), duration (minutes) and GeoJSON geometry
"""

from .routing_client import RouteGeometryFetcher
from .routing_errors import RoutingError, RoutingUnavailableError
from .routing_models import OsrmRouteResponse, RouteInfo

__all__ = [
    "RouteGeometryFetcher",
    "RouteInfo",
    "OsrmRouteResponse",
    "RoutingError",
    "RoutingUnavailableError",
]
