"""
Route summary returned to callers and the OSRM response shape it is parsed from.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..geocoding.geocoding_models import Coordinate

METERS_TO_MILES = 0.000621371


@dataclass
class RouteInfo:
    """Driving route through a rep's stops."""

    distance_miles: float
    duration_minutes: float

    # GeoJSON LineString as returned by the routing service
    geometry: Optional[Dict[str, Any]] = None

    coordinates: List[Coordinate] = field(default_factory=list)

    @classmethod
    def degenerate(cls, coordinates: List[Coordinate]) -> "RouteInfo":
        """Route for zero or one point: nothing to drive."""
        return cls(
            distance_miles=0.0,
            duration_minutes=0.0,
            geometry=None,
            coordinates=list(coordinates),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance_miles": self.distance_miles,
            "duration_minutes": self.duration_minutes,
            "geometry": self.geometry,
            "coordinates": [c.to_dict() for c in self.coordinates],
        }


class OsrmRoute(BaseModel):
    """One entry of an OSRM /route response's `routes` list."""
    distance: float
    duration: float
    geometry: Optional[Dict[str, Any]] = None


class OsrmRouteResponse(BaseModel):
    """Top-level OSRM /route response."""
    code: Optional[str] = None
    message: Optional[str] = None
    routes: List[OsrmRoute] = []
