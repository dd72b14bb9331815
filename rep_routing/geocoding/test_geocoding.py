"""
Test suite for the geocoding module.

Tests all components including address variations, rate limiting, the
Nominatim client, the durable cache and the address resolver, with the
HTTP session and all waits mocked out.

To run tests:
- Command line: python -m pytest rep_routing/geocoding/test_geocoding.py -v
"""

import json
from unittest.mock import MagicMock, patch, DEFAULT
import pytest
import requests

from ..cancellation import CancellationToken, OperationCancelledError
from .address_resolver import AddressResolver
from .address_variations import (
    clean_address,
    expand_abbreviations,
    extract_street,
    get_address_variations,
    parse_coordinate_text,
)
from .geocoding_cache import GeocodeCache, JsonBlobStore
from .geocoding_client import NominatimClient
from .geocoding_config import ARIZONA_BOUNDS, GeocoderConfig
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


MESA = Coordinate(lat=33.4152, lon=-111.8315)
TUCSON = Coordinate(lat=32.2226, lon=-110.9747)


# ==================== FIXTURES ====================

@pytest.fixture(autouse=True)
def mock_logging():
    """Mock all logging functions to prevent actual logging during tests."""
    base = 'rep_routing.geocoding'
    with patch.multiple(f'{base}.geocoding_rate_limiter',
                        log_info=DEFAULT, log_debug=DEFAULT) as limiter_mocks:
        with patch.multiple(f'{base}.geocoding_client',
                            log_info=DEFAULT, log_debug=DEFAULT, log_warning=DEFAULT) as client_mocks:
            with patch.multiple(f'{base}.geocoding_cache',
                                log_info=DEFAULT, log_debug=DEFAULT,
                                log_warning=DEFAULT, log_error=DEFAULT) as cache_mocks:
                with patch.multiple(f'{base}.address_resolver',
                                    log_info=DEFAULT, log_debug=DEFAULT,
                                    log_warning=DEFAULT) as resolver_mocks:
                    yield {
                        'limiter': limiter_mocks,
                        'client': client_mocks,
                        'cache': cache_mocks,
                        'resolver': resolver_mocks,
                    }


@pytest.fixture
def config(tmp_path):
    """Default geocoder settings with the cache in a temp directory."""
    return GeocoderConfig(cache_dir=str(tmp_path / "geocode"))


@pytest.fixture
def cache(tmp_path):
    """Empty cache persisted under a temp directory."""
    return GeocodeCache(store=JsonBlobStore(str(tmp_path / "geocode")))


def make_response(status_code=200, payload=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = payload if payload is not None else []
    return response


def make_client(config, responses, sleep=None):
    """NominatimClient over a mocked session returning `responses` in order."""
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = responses
    client = NominatimClient(
        config=config,
        rate_limiter=MagicMock(),
        session=session,
        sleep=sleep or MagicMock(),
    )
    return client, session


# ==================== MODEL TESTS ====================

class TestModels:
    """Test cases for Coordinate and GeocodeResult."""

    def test_coordinate_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            Coordinate(lat=91.0, lon=0.0)
        with pytest.raises(ValueError):
            Coordinate(lat=0.0, lon=-181.0)

    def test_result_serialization_shape(self):
        assert GeocodeResult.success(MESA).to_dict() == {
            "coordinates": {"lat": 33.4152, "lon": -111.8315},
            "error": None,
        }
        assert GeocodeResult.failure("Address not found").to_dict() == {
            "coordinates": None,
            "error": "Address not found",
        }

    def test_result_from_dict(self):
        result = GeocodeResult.from_dict({"coordinates": {"lat": 33.4152, "lon": -111.8315}, "error": None})
        assert result.ok
        assert result.coordinates == MESA

        failed = GeocodeResult.from_dict({"coordinates": None, "error": "Address not found"})
        assert not failed.ok
        assert failed.error == "Address not found"

    def test_bounding_box(self):
        assert ARIZONA_BOUNDS.contains(MESA.lat, MESA.lon)
        assert not ARIZONA_BOUNDS.contains(40.7128, -74.0060)


# ==================== ADDRESS VARIATION TESTS ====================

class TestAddressVariations:
    """Test cases for candidate query generation."""

    def test_variation_order_for_annotated_address(self):
        """Junk-stripped, street-only and expanded forms come in priority order."""
        variations = get_address_variations("425 N Vineyard, Mesa, AZ 85201 #gate1234")

        assert variations[:5] == [
            "425 N Vineyard, Mesa, AZ 85201 #gate1234",
            "425 N Vineyard, Mesa, AZ 85201",
            "425 N Vineyard",
            "425 North Vineyard",
            "425 North Vineyard, AZ",
        ]
        assert "425 North Vineyard, Mesa, AZ 85201" in variations
        assert len(variations) == len(set(variations))

    def test_zip_stripped_form_is_last(self):
        variations = get_address_variations("123 Main St, Mesa, AZ 85201")

        assert variations[0] == "123 Main St, Mesa, AZ 85201"
        assert variations[-1] == "123 Main St, Mesa, AZ"

    def test_comma_split_fallback(self):
        """Without a recognisable street number the text before the first comma is tried."""
        assert get_address_variations("Lot 5, Rural Route") == ["Lot 5, Rural Route", "Lot 5"]

    def test_street_ending_at_city_name(self):
        assert extract_street("1234 E Baseline Rd Gilbert AZ 85233") == "1234 E Baseline Rd"

    def test_no_empty_candidates(self):
        assert "" not in get_address_variations("  ")

    def test_clean_address(self):
        assert clean_address("123 Main St, Mesa, AZ, USA 2 story") == "123 Main St, Mesa, AZ"
        assert clean_address("123  Main   St, United States") == "123 Main St"

    def test_expand_abbreviations(self):
        assert expand_abbreviations("123 E Main St") == "123 East Main Street"
        # Lowercase directions are left alone
        assert expand_abbreviations("12 n 5th ave") == "12 n 5th Avenue"

    def test_parse_coordinate_text(self):
        assert parse_coordinate_text("33.4152, -111.8315") == MESA
        assert parse_coordinate_text("  33.4152,-111.8315 ") == MESA
        assert parse_coordinate_text("123 Main St") is None
        # Out-of-range pairs are not coordinates
        assert parse_coordinate_text("95.0, -111.8") is None


# ==================== RATE LIMITER TESTS ====================

class TestTokenBucketRateLimiter:
    """Test cases for TokenBucketRateLimiter with a controlled clock."""

    @pytest.fixture
    def clock(self):
        """Patch the limiter's time module with a fake clock that sleep advances."""
        now = [1000.0]

        def fake_sleep(seconds):
            now[0] += seconds

        with patch('rep_routing.geocoding.geocoding_rate_limiter.time') as mock_time:
            mock_time.time.side_effect = lambda: now[0]
            mock_time.sleep.side_effect = fake_sleep
            yield now, mock_time

    def test_initialization_validation(self):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(rate_per_second=0)
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(burst_capacity=0)

    def test_one_request_per_interval(self, clock):
        now, _ = clock
        limiter = TokenBucketRateLimiter(rate_per_second=1 / 1.2, burst_capacity=1)

        assert limiter.acquire() is True
        assert limiter.acquire() is False
        assert limiter.get_wait_time() == pytest.approx(1.2)

        now[0] += 1.3
        assert limiter.acquire() is True

    def test_wait_for_token_sleeps_for_interval(self, clock):
        now, mock_time = clock
        limiter = TokenBucketRateLimiter(rate_per_second=1 / 1.2, burst_capacity=1)

        limiter.wait_for_token()
        mock_time.sleep.assert_not_called()

        limiter.wait_for_token()
        first_wait = mock_time.sleep.call_args_list[0][0][0]
        assert first_wait == pytest.approx(1.2)
        assert now[0] >= 1001.2 - 1e-9

    def test_request_larger_than_bucket(self, clock):
        limiter = TokenBucketRateLimiter(burst_capacity=1)

        with pytest.raises(RateLimitError):
            limiter.wait_for_token(tokens_needed=2)

    def test_gives_up_after_attempts(self, clock):
        now, mock_time = clock
        mock_time.sleep.side_effect = None  # clock never advances
        limiter = TokenBucketRateLimiter(rate_per_second=1 / 1.2, burst_capacity=1, retry_attempts=2)
        limiter.acquire()

        with pytest.raises(RateLimitError):
            limiter.wait_for_token()
        assert mock_time.sleep.call_count == 2

    def test_wait_interrupted_by_cancellation(self, clock):
        limiter = TokenBucketRateLimiter(rate_per_second=1 / 1.2, burst_capacity=1)
        limiter.acquire()

        cancel_token = MagicMock()
        cancel_token.wait.return_value = True
        cancel_token.reason = "Route superseded"

        with pytest.raises(OperationCancelledError, match="Route superseded"):
            limiter.wait_for_token(cancel_token=cancel_token)


# ==================== CLIENT TESTS ====================

class TestNominatimClient:
    """Test cases for NominatimClient with a mocked HTTP session."""

    def test_session_identifies_itself(self, config):
        client, session = make_client(config, [])
        assert session.headers['User-Agent'] == config.user_agent

    def test_build_query_appends_region(self, config):
        client, _ = make_client(config, [])

        assert client.build_query("425 N Vineyard, Mesa") == "425 N Vineyard, Mesa, Arizona"
        assert client.build_query("425 N Vineyard, Mesa, AZ 85201") == "425 N Vineyard, Mesa, AZ 85201"
        assert client.build_query("Tempe, arizona") == "Tempe, arizona"

    def test_build_query_locality_rewrite(self, config):
        client, _ = make_client(config, [])

        assert (client.build_query("123 Main St, Corona de Tucson, AZ")
                == "123 main st, Vail, AZ")

    def test_search_success(self, config):
        payload = [{"lat": "33.4152", "lon": "-111.8315", "display_name": "Mesa, Arizona"}]
        client, session = make_client(config, [make_response(payload=payload)])

        assert client.search("425 N Vineyard, Mesa") == MESA

        _, kwargs = session.get.call_args
        assert kwargs['params'] == {"q": "425 N Vineyard, Mesa, Arizona", "format": "json", "limit": 1}
        assert kwargs['timeout'] == config.request_timeout
        client._rate_limiter.wait_for_token.assert_called_once()

    def test_search_empty_result(self, config):
        client, _ = make_client(config, [make_response(payload=[])])

        with pytest.raises(AddressNotFoundError) as exc_info:
            client.search("1 Nowhere Ln")

        assert str(exc_info.value) == "Address not found"
        assert exc_info.value.reason == "not_found"

    def test_search_outside_bounding_box(self, config):
        payload = [{"lat": "40.7128", "lon": "-74.0060"}]
        client, _ = make_client(config, [make_response(payload=payload)])

        with pytest.raises(OutOfRegionError) as exc_info:
            client.search("123 Main St")

        assert isinstance(exc_info.value, AddressNotFoundError)
        assert str(exc_info.value) == "Location found outside of Arizona"
        assert exc_info.value.reason == "out_of_region"

    def test_retry_bound_on_503(self, config):
        """Three 503s produce exactly three attempts with 1s then 2s backoff."""
        sleep = MagicMock()
        responses = [make_response(503, reason="Service Unavailable") for _ in range(3)]
        client, session = make_client(config, responses, sleep=sleep)

        with pytest.raises(RateLimitedError) as exc_info:
            client.search("425 N Vineyard, Mesa")

        assert session.get.call_count == 3
        assert [c[0][0] for c in sleep.call_args_list] == [1, 2]
        assert str(exc_info.value) == "API status 503: Service Unavailable"
        assert exc_info.value.status_code == 503

    def test_retry_then_success(self, config, mock_logging):
        payload = [{"lat": "32.2226", "lon": "-110.9747"}]
        responses = [make_response(500, reason="Internal Server Error"), make_response(payload=payload)]
        client, session = make_client(config, responses)

        assert client.search("Tucson") == TUCSON
        assert session.get.call_count == 2
        mock_logging['client']['log_warning'].assert_called_once()

    def test_network_error_is_retried(self, config):
        client, session = make_client(
            config, requests.exceptions.ConnectionError("connection refused")
        )

        with pytest.raises(UpstreamError):
            client.search("425 N Vineyard, Mesa")

        assert session.get.call_count == config.max_retries + 1

    def test_malformed_response_not_retried(self, config):
        response = make_response()
        response.json.side_effect = ValueError("Expecting value")
        client, session = make_client(config, [response])

        with pytest.raises(GeocodingError) as exc_info:
            client.search("425 N Vineyard, Mesa")

        assert not isinstance(exc_info.value, UpstreamError)
        assert session.get.call_count == 1

    def test_cancelled_before_request(self, config):
        client, session = make_client(config, [])
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            client.search("425 N Vineyard, Mesa", cancel_token=token)

        session.get.assert_not_called()

    def test_backoff_wait_interrupted_by_cancellation(self, config):
        """Cancelling during the retry backoff stops without another attempt."""
        sleep = MagicMock()
        responses = [make_response(503, reason="Service Unavailable") for _ in range(3)]
        client, session = make_client(config, responses, sleep=sleep)
        token = MagicMock()
        token.cancelled = False
        token.reason = "Interrupted by user"
        token.raise_if_cancelled.return_value = None
        token.wait.return_value = True

        with pytest.raises(OperationCancelledError, match="Interrupted by user"):
            client.search("425 N Vineyard, Mesa", cancel_token=token)

        assert session.get.call_count == 1
        token.wait.assert_called_once_with(1)
        sleep.assert_not_called()

    def test_backoff_wait_uses_token_when_not_cancelled(self, config):
        payload = [{"lat": "32.2226", "lon": "-110.9747"}]
        responses = [make_response(503, reason="Service Unavailable"), make_response(payload=payload)]
        client, session = make_client(config, responses)
        token = MagicMock()
        token.raise_if_cancelled.return_value = None
        token.wait.return_value = False

        assert client.search("Tucson", cancel_token=token) == TUCSON
        token.wait.assert_called_once_with(1)


# ==================== CACHE TESTS ====================

class TestGeocodeCache:
    """Test cases for GeocodeCache and JsonBlobStore."""

    def test_entries_survive_reload(self, tmp_path):
        store_dir = str(tmp_path / "geocode")
        cache = GeocodeCache(store=JsonBlobStore(store_dir))
        cache.set("425 N Vineyard, Mesa", GeocodeResult.success(MESA))
        cache.set("1 Nowhere Ln", GeocodeResult.failure("Address not found"))

        reloaded = GeocodeCache(store=JsonBlobStore(store_dir))

        assert len(reloaded) == 2
        assert reloaded.get("425 N Vineyard, Mesa").coordinates == MESA
        assert reloaded.get("1 Nowhere Ln").error == "Address not found"

    def test_blob_is_whole_map(self, tmp_path, cache):
        cache.set("425 N Vineyard, Mesa", GeocodeResult.success(MESA))

        data = json.loads((tmp_path / "geocode" / "geocode-cache.json").read_text())
        assert data == {
            "425 N Vineyard, Mesa": {"coordinates": {"lat": 33.4152, "lon": -111.8315}, "error": None}
        }

    def test_atomic_write_leaves_no_temp_files(self, tmp_path, cache):
        cache.set("a", GeocodeResult.success(MESA))
        cache.set("b", GeocodeResult.success(TUCSON))

        files = [p.name for p in (tmp_path / "geocode").iterdir()]
        assert files == ["geocode-cache.json"]

    def test_corrupt_store_starts_empty(self, tmp_path, mock_logging):
        store_dir = tmp_path / "geocode"
        store_dir.mkdir()
        (store_dir / "geocode-cache.json").write_text("{not json")

        cache = GeocodeCache(store=JsonBlobStore(str(store_dir)))

        assert len(cache) == 0
        mock_logging['cache']['log_warning'].assert_called_once()

    def test_malformed_entries_skipped(self, tmp_path):
        store_dir = tmp_path / "geocode"
        store_dir.mkdir()
        (store_dir / "geocode-cache.json").write_text(json.dumps({
            "good": {"coordinates": {"lat": 33.4152, "lon": -111.8315}, "error": None},
            "bad": {"coordinates": {"lat": "north"}, "error": None},
        }))

        cache = GeocodeCache(store=JsonBlobStore(str(store_dir)))

        assert "good" in cache
        assert "bad" not in cache

    def test_write_failure_keeps_memory_entry(self):
        store = MagicMock()
        store.read.return_value = None
        store.write.side_effect = CacheError("disk full")
        cache = GeocodeCache(store=store)

        with pytest.raises(CacheError):
            cache.set("425 N Vineyard, Mesa", GeocodeResult.success(MESA))

        assert cache.get("425 N Vineyard, Mesa").coordinates == MESA

    def test_clear_and_invalidate(self, tmp_path, cache):
        cache.set("a", GeocodeResult.success(MESA))
        cache.set("b", GeocodeResult.failure("Address not found"))

        assert cache.invalidate("b") is True
        assert cache.invalidate("b") is False
        assert cache.get_cache_stats() == {"total_entries": 1, "resolved": 1, "failed": 0}

        cache.clear()
        reloaded = GeocodeCache(store=JsonBlobStore(str(tmp_path / "geocode")))
        assert len(reloaded) == 0


# ==================== RESOLVER TESTS ====================

class TestAddressResolver:
    """Test cases for AddressResolver with a mocked upstream client."""

    @pytest.fixture
    def client(self, config):
        client = MagicMock(spec=NominatimClient)
        client.config = config
        client.search.return_value = MESA
        return client

    @pytest.fixture
    def resolver(self, client, cache, config):
        return AddressResolver(client=client, cache=cache, config=config)

    def test_idempotent_resolve(self, resolver, client):
        """A repeated address reaches the geocoder once, within and across calls."""
        first = resolver.resolve(["425 N Vineyard, Mesa", "425 N Vineyard, Mesa"])
        second = resolver.resolve(["425 N Vineyard, Mesa"])

        assert client.search.call_count == 1
        assert first == [GeocodeResult.success(MESA)] * 2
        assert second == [GeocodeResult.success(MESA)]

    def test_order_preserved(self, resolver, client):
        client.search.side_effect = lambda query, cancel_token=None: (
            TUCSON if "Tucson" in query else MESA
        )

        results = resolver.resolve(["1 A St, Tucson", "2 B St, Mesa", "1 A St, Tucson"])

        assert [r.coordinates for r in results] == [TUCSON, MESA, TUCSON]

    def test_coordinate_short_circuit(self, resolver, client):
        results = resolver.resolve(["33.4152, -111.8315"])

        assert results == [GeocodeResult.success(MESA)]
        client.search.assert_not_called()

    def test_coordinate_outside_region_accepted_with_warning(self, resolver, client, mock_logging):
        results = resolver.resolve(["40.7128,-74.0060"])

        assert results[0].coordinates == Coordinate(lat=40.7128, lon=-74.0060)
        client.search.assert_not_called()
        mock_logging['resolver']['log_warning'].assert_called_once()

    def test_falls_back_to_next_candidate(self, resolver, client):
        client.search.side_effect = [AddressNotFoundError("Address not found"), MESA]

        result = resolver.resolve_one("425 N Vineyard, Mesa, AZ 85201 #gate1234")

        assert result.coordinates == MESA
        assert client.search.call_args_list[0][0][0] == "425 N Vineyard, Mesa, AZ 85201 #gate1234"
        assert client.search.call_args_list[1][0][0] == "425 N Vineyard, Mesa, AZ 85201"

    def test_failure_cached_with_last_error(self, resolver, client):
        client.search.side_effect = RateLimitedError("API status 503: Service Unavailable", status_code=503)

        result = resolver.resolve_one("425 N Vineyard, Mesa")
        calls = client.search.call_count
        again = resolver.resolve_one("425 N Vineyard, Mesa")

        assert result == GeocodeResult.failure("API status 503: Service Unavailable")
        assert again == result
        assert client.search.call_count == calls

    def test_not_found_default_error(self, resolver, client):
        client.search.side_effect = OutOfRegionError("Location found outside of Arizona")

        result = resolver.resolve_one("123 Main St, Springfield")

        assert result.coordinates is None
        assert result.error == "Location found outside of Arizona"

    def test_blank_address(self, resolver, client):
        assert resolver.resolve_one("   ") == GeocodeResult.failure("Empty address")
        client.search.assert_not_called()

    def test_cancellation_caches_nothing(self, resolver, client, cache):
        token = CancellationToken()
        token.cancel("Route superseded")

        with pytest.raises(OperationCancelledError):
            resolver.resolve(["425 N Vineyard, Mesa"], cancel_token=token)

        assert len(cache) == 0
        client.search.assert_not_called()

    def test_cache_write_failure_is_not_fatal(self, client, config, mock_logging):
        store = MagicMock()
        store.read.return_value = None
        store.write.side_effect = CacheError("read-only filesystem")
        resolver = AddressResolver(client=client, cache=GeocodeCache(store=store), config=config)

        results = resolver.resolve(["425 N Vineyard, Mesa"])

        assert results[0].coordinates == MESA
        mock_logging['resolver']['log_warning'].assert_called_once()

    def test_pre_cache_and_lookup(self, resolver, client):
        assert resolver.lookup("425 N Vineyard, Mesa") is None

        assert resolver.pre_cache(["425 N Vineyard, Mesa", "425 N Vineyard, Mesa"]) == 1
        assert resolver.pre_cache(["425 N Vineyard, Mesa"]) == 0
        assert resolver.lookup("425 N Vineyard, Mesa") == MESA
        assert client.search.call_count == 1

    def test_clear_cache_forces_refetch(self, resolver, client):
        resolver.resolve(["425 N Vineyard, Mesa"])
        resolver.clear_cache()
        resolver.resolve(["425 N Vineyard, Mesa"])

        assert client.search.call_count == 2

    def test_clear_cache_write_failure_is_not_fatal(self, client, config, mock_logging):
        store = MagicMock()
        store.read.return_value = None
        resolver = AddressResolver(client=client, cache=GeocodeCache(store=store), config=config)
        resolver.resolve(["425 N Vineyard, Mesa"])
        store.write.side_effect = CacheError("disk full")

        resolver.clear_cache()

        assert resolver.lookup("425 N Vineyard, Mesa") is None
        mock_logging['resolver']['log_warning'].assert_called_once()

    def test_end_to_end_with_nominatim_client(self, config, cache):
        """Resolver + real client over a mocked session, outside-box match then a hit."""
        outside = make_response(payload=[{"lat": "40.7128", "lon": "-74.0060"}])
        inside = make_response(payload=[{"lat": "33.4152", "lon": "-111.8315"}])
        client, session = make_client(config, [outside, inside])
        resolver = AddressResolver(client=client, cache=cache, config=config)

        results = resolver.resolve(["425 N Vineyard, Mesa, AZ 85201 #gate1234"])

        assert results[0].coordinates == MESA
        assert session.get.call_count == 2
