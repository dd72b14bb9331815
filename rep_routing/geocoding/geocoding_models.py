"""
Value types shared by the geocoder, the cache and the sequencer.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float

    def __post_init__(self):
        if not -90 <= self.lat <= 90:
            raise ValueError(f"Latitude must be between -90 and 90, got {self.lat}")
        if not -180 <= self.lon <= 180:
            raise ValueError(f"Longitude must be between -180 and 180, got {self.lon}")

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coordinate":
        return cls(lat=float(data["lat"]), lon=float(data["lon"]))


@dataclass(frozen=True)
class GeocodeResult:
    """
    Outcome of resolving one raw address.

    Exactly one of `coordinates` and `error` is set. A failure is a terminal
    state that stays cached until the cache is cleared.
    """

    coordinates: Optional[Coordinate] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.coordinates is not None

    @classmethod
    def success(cls, coordinates: Coordinate) -> "GeocodeResult":
        return cls(coordinates=coordinates, error=None)

    @classmethod
    def failure(cls, error: str) -> "GeocodeResult":
        return cls(coordinates=None, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeocodeResult":
        coords = data.get("coordinates")
        return cls(
            coordinates=Coordinate.from_dict(coords) if coords else None,
            error=data.get("error"),
        )
