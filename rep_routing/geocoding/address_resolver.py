"""
Address resolution: raw address text to coordinates.

Combines the literal-coordinate short-circuit, candidate query generation,
the Nominatim client and the durable cache. Resolution failures are returned
(and cached) as GeocodeResult values; the UI offers manual pin placement for
them, so they never propagate as exceptions.
"""

from typing import Dict, List, Optional, Sequence

from ..cancellation import CancellationToken, check_cancelled
from ..config.logger_module import log_debug, log_info, log_warning
from .address_variations import get_address_variations, parse_coordinate_text
from .geocoding_cache import GeocodeCache, JsonBlobStore
from .geocoding_client import NominatimClient
from .geocoding_config import GeocoderConfig
from .geocoding_errors import AddressNotFoundError, CacheError, GeocodingError
from .geocoding_models import Coordinate, GeocodeResult


DEFAULT_ERROR = "Address not found"


class AddressResolver:
    """
    Resolves batches of raw addresses sequentially through a shared cache.

    Requests are never issued concurrently: the geocoder's usage policy is
    about one request per second and bursts lead to sustained 429s for the
    whole session.
    """

    def __init__(self,
                 client: NominatimClient = None,
                 cache: GeocodeCache = None,
                 config: GeocoderConfig = None):
        """
        Initialize the resolver.

        Args:
            client: Upstream geocoder client
            cache: Durable geocode cache
            config: Geocoder settings, shared with the default client
        """
        self.config = config or (client.config if client else GeocoderConfig.from_env())
        self.client = client or NominatimClient(config=self.config)
        self.cache = cache if cache is not None else GeocodeCache(
            store=JsonBlobStore(self.config.cache_dir),
            store_key=self.config.cache_key,
        )

        log_info(f"AddressResolver initialized ({len(self.cache)} cached addresses)")

    def resolve(self,
                addresses: Sequence[str],
                cancel_token: Optional[CancellationToken] = None) -> List[GeocodeResult]:
        """
        Resolve addresses, preserving input order.

        Each distinct uncached address is geocoded once; duplicates and
        previously seen addresses are served from the cache.

        Args:
            addresses: Raw address strings (duplicates allowed)
            cancel_token: Optional token checked between addresses and requests

        Returns:
            One GeocodeResult per input address, in input order

        Raises:
            OperationCancelledError: The token fired; finished addresses stay cached
        """
        to_fetch = self._uncached(addresses)

        if to_fetch:
            log_info(f"Resolving {len(to_fetch)} new address(es) of {len(addresses)} requested")

        for i, address in enumerate(to_fetch, 1):
            check_cancelled(cancel_token)
            result = self.resolve_one(address, cancel_token)
            log_info(
                f"Resolved {i}/{len(to_fetch)}: '{address}' -> "
                f"{self._describe(result)}"
            )

        return [
            self.cache.get(address) or GeocodeResult.failure("Internal cache failure")
            for address in addresses
        ]

    def resolve_one(self,
                    address: str,
                    cancel_token: Optional[CancellationToken] = None) -> GeocodeResult:
        """
        Resolve a single address, using the cache when possible.

        Returns:
            Cached or freshly computed result (which is then cached)
        """
        cached = self.cache.get(address)
        if cached is not None:
            return cached

        result = self._geocode(address, cancel_token)
        self._store(address, result)
        return result

    def pre_cache(self,
                  addresses: Sequence[str],
                  cancel_token: Optional[CancellationToken] = None) -> int:
        """
        Warm the cache for addresses that will be needed later.

        Returns:
            Number of addresses that were geocoded
        """
        to_fetch = self._uncached(addresses)
        if not to_fetch:
            return 0

        log_info(f"Pre-caching {len(to_fetch)} new address(es)")
        for address in to_fetch:
            check_cancelled(cancel_token)
            self.resolve_one(address, cancel_token)
        log_info("Finished pre-caching")
        return len(to_fetch)

    def lookup(self, address: str) -> Optional[Coordinate]:
        """Return cached coordinates for an address without any network call."""
        result = self.cache.get(address)
        return result.coordinates if result else None

    def clear_cache(self) -> None:
        """Forget every cached result, including permanent failures."""
        try:
            self.cache.clear()
        except CacheError as e:
            # In-memory entries are gone; the stale blob is reloaded next run
            log_warning(f"Failed to persist cleared cache (continuing): {e}")

    def _uncached(self, addresses: Sequence[str]) -> List[str]:
        unique: Dict[str, None] = dict.fromkeys(addresses)
        return [address for address in unique if address not in self.cache]

    def _geocode(self,
                 address: str,
                 cancel_token: Optional[CancellationToken]) -> GeocodeResult:
        if not address or not address.strip():
            return GeocodeResult.failure("Empty address")

        literal = parse_coordinate_text(address)
        if literal is not None:
            if not self.config.bounds.contains(literal.lat, literal.lon):
                log_warning(
                    f"Coordinates {literal.lat},{literal.lon} are outside "
                    f"{self.config.region_name} bounds but will be used"
                )
            log_info(f"Using manual coordinates for: {address}")
            return GeocodeResult.success(literal)

        candidates = get_address_variations(address, self.config.region_abbreviation)
        last_error = DEFAULT_ERROR

        for candidate in candidates:
            check_cancelled(cancel_token)
            try:
                coordinates = self.client.search(candidate, cancel_token)
                log_debug(f"Candidate '{candidate}' matched for '{address}'")
                return GeocodeResult.success(coordinates)
            except AddressNotFoundError as e:
                log_debug(f"Candidate '{candidate}' failed [{e.reason}]: {e}")
                last_error = str(e)
            except GeocodingError as e:
                log_warning(f"Candidate '{candidate}' failed [{e.reason}]: {e}")
                last_error = str(e)

        log_warning(
            f"Could not resolve '{address}' after {len(candidates)} candidate(s): {last_error}"
        )
        return GeocodeResult.failure(last_error)

    def _store(self, address: str, result: GeocodeResult) -> None:
        try:
            self.cache.set(address, result)
        except CacheError as e:
            # The in-memory entry is already set; only persistence failed
            log_warning(f"Failed to persist cache entry for '{address}' (continuing): {e}")

    @staticmethod
    def _describe(result: GeocodeResult) -> str:
        if result.coordinates:
            return f"({result.coordinates.lat}, {result.coordinates.lon})"
        return f"unresolved: {result.error}"

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        """
        Get combined statistics from cache and rate limiter.
        """
        return {
            "cache": self.cache.get_cache_stats(),
            "rate_limit": self.client.get_rate_limit_status(),
        }
