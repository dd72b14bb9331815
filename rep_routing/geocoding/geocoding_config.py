"""
Configuration for the geocoding module.

Defines the serviced region (bounding box and query disambiguator), the
Nominatim endpoint and the pacing/retry budget used against it.
"""

from dataclasses import dataclass, field
from typing import Dict

from ..config.config_module import get_config, get_float_config, get_int_config


@dataclass(frozen=True)
class BoundingBox:
    """Lat/lon rectangle used to reject geocodes outside the serviced region."""

    north: float
    south: float
    west: float
    east: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east


ARIZONA_BOUNDS = BoundingBox(north=37.1, south=31.2, west=-115.0, east=-108.9)


@dataclass
class GeocoderConfig:
    """Settings for the Nominatim client and the address resolver."""

    # Upstream endpoint and identifying header (required by Nominatim policy)
    search_url: str = "https://nominatim.openstreetmap.org/search"
    user_agent: str = "RepRoutePlanner/1.0 (Arizona)"

    # Serviced region
    region_name: str = "Arizona"
    region_abbreviation: str = "AZ"
    bounds: BoundingBox = ARIZONA_BOUNDS

    # Localities the geocoder files under a neighbouring city:
    # lowercase locality -> replacement city suffix
    locality_rewrites: Dict[str, str] = field(
        default_factory=lambda: {"corona de tucson": "Vail, AZ"}
    )

    # Pacing: at most one request per `min_request_interval` seconds
    min_request_interval: float = 1.2

    # Retries after the first attempt, with backoff doubling from this value
    max_retries: int = 2
    initial_backoff_seconds: float = 1.0

    request_timeout: float = 10.0

    # Durable cache location and the single store key holding the whole map
    cache_dir: str = "./.cache_geocode"
    cache_key: str = "geocode-cache"

    def __post_init__(self):
        """Validate configuration values."""
        if not self.search_url:
            raise ValueError("search_url cannot be empty")

        if not self.user_agent or not self.user_agent.strip():
            raise ValueError("user_agent is required by the geocoding service")

        if self.min_request_interval <= 0:
            raise ValueError(
                f"min_request_interval must be > 0, got {self.min_request_interval}"
            )

        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

        if self.initial_backoff_seconds < 0:
            raise ValueError(
                f"initial_backoff_seconds must be >= 0, got {self.initial_backoff_seconds}"
            )

        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self.request_timeout}")

        if self.bounds.south > self.bounds.north or self.bounds.west > self.bounds.east:
            raise ValueError(f"Invalid bounding box: {self.bounds}")

    @property
    def requests_per_second(self) -> float:
        """Token bucket refill rate derived from the minimum request interval."""
        return 1.0 / self.min_request_interval

    @classmethod
    def from_env(cls) -> "GeocoderConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            search_url=get_config("NOMINATIM_SEARCH_URL", defaults.search_url),
            user_agent=get_config("GEOCODER_USER_AGENT", defaults.user_agent),
            min_request_interval=get_float_config(
                "GEOCODER_MIN_INTERVAL", defaults.min_request_interval
            ),
            max_retries=get_int_config("GEOCODER_MAX_RETRIES", defaults.max_retries),
            initial_backoff_seconds=get_float_config(
                "GEOCODER_BACKOFF_SECONDS", defaults.initial_backoff_seconds
            ),
            request_timeout=get_float_config("GEOCODER_TIMEOUT", defaults.request_timeout),
            cache_dir=get_config("GEOCODE_CACHE_DIR", defaults.cache_dir),
        )
