"""
Route planning for one rep's day.

Ties the pieces together: resolves every stop (and the rep's home base) in
one sequential batch, sequences the stops from home, and fetches the driving
route through them. Problems with individual addresses or the routing
service end up as warnings on the plan rather than exceptions, so the
dispatcher always gets an itinerary to work with.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from .cancellation import CancellationToken, check_cancelled
from .config.logger_module import log_info, log_warning
from .geocoding.address_resolver import AddressResolver
from .geocoding.geocoding_models import Coordinate
from .routing.routing_client import RouteGeometryFetcher
from .routing.routing_models import RouteInfo
from .sequencing.itinerary_export import build_directions_url
from .sequencing.route_sequencer import RouteSequencer
from .sequencing.sequencing_models import ItineraryEntry, Stop


def home_base_address(home_zip: str) -> str:
    """Geocodable address for a rep's home ZIP code."""
    return f"{home_zip}, Arizona, USA"


@dataclass
class RoutePlan:
    """Everything the dispatcher needs to send a rep out for the day."""

    rep_name: str
    stops: List[Stop] = field(default_factory=list)
    itinerary: List[ItineraryEntry] = field(default_factory=list)
    route: Optional[RouteInfo] = None
    unresolved: List[Stop] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    home: Optional[Coordinate] = None
    directions_url: str = "#"

    def to_dict(self) -> Dict[str, Any]:
        def stop_dict(stop: Stop) -> Dict[str, Any]:
            return {
                "stop_id": stop.stop_id,
                "address": stop.address,
                "customer_name": stop.customer_name,
                "city": stop.city,
                "notes": stop.notes,
                "original_timeframe": stop.original_timeframe,
                "scheduled_timeframe": stop.scheduled_timeframe,
                "needs_reschedule": stop.needs_reschedule,
                "coordinate": stop.coordinate.to_dict() if stop.coordinate else None,
            }

        return {
            "rep_name": self.rep_name,
            "stops": [stop_dict(stop) for stop in self.stops],
            "itinerary": [
                {
                    "kind": entry.kind,
                    "time_range": entry.time_range,
                    "duration_minutes": entry.duration_minutes,
                    "duration_label": entry.duration_label,
                    "address": entry.stop.address if entry.stop else None,
                }
                for entry in self.itinerary
            ],
            "route": self.route.to_dict() if self.route else None,
            "unresolved": [stop.address for stop in self.unresolved],
            "warnings": list(self.warnings),
            "home": self.home.to_dict() if self.home else None,
            "directions_url": self.directions_url,
        }


class RoutePlanner:
    """
    Plans a rep's day: resolve, sequence, route.

    This class orchestrates the pipeline:
    1. Resolve stop addresses and the home base through the geocode cache
    2. Order stops by requested hour and distance from home
    3. Fetch the driving route home -> stops -> home
    """

    def __init__(self,
                 resolver: AddressResolver = None,
                 sequencer: RouteSequencer = None,
                 route_fetcher: RouteGeometryFetcher = None,
                 fetch_route: bool = True):
        """
        Initialize the planner.

        Args:
            resolver: Address resolver (built from the environment if omitted)
            sequencer: Stop sequencer
            route_fetcher: OSRM client (built from the environment if omitted)
            fetch_route: Whether to request driving geometry at all
        """
        self.resolver = resolver or AddressResolver()
        self.sequencer = sequencer or RouteSequencer()
        self.fetch_route = fetch_route
        self.route_fetcher = route_fetcher or (RouteGeometryFetcher() if fetch_route else None)

        self.stats = {
            'routes_planned': 0,
            'stops_planned': 0,
            'unresolved_stops': 0,
            'routes_fetched': 0,
            'route_failures': 0,
            'elapsed_seconds': 0.0,
        }

    def plan_route(self,
                   rep_name: str,
                   stops: Sequence[Stop],
                   home_zip: Optional[str] = None,
                   cancel_token: Optional[CancellationToken] = None) -> RoutePlan:
        """
        Build a rep's route plan.

        Args:
            rep_name: Rep the route is for
            stops: The day's stops in any order (not modified)
            home_zip: Rep's home ZIP code; the route starts and ends there
            cancel_token: Optional token checked between pipeline steps

        Returns:
            RoutePlan with ordered stops, itinerary, route and warnings

        Raises:
            OperationCancelledError: The token fired
        """
        start_time = time.time()
        plan = RoutePlan(rep_name=rep_name)

        if not stops:
            log_info(f"No stops to plan for {rep_name}")
            return plan

        log_info(f"Planning route for {rep_name}: {len(stops)} stop(s), home ZIP {home_zip or 'none'}")

        stops = [replace(stop) for stop in stops]
        plan.home = self._resolve_all(stops, home_zip, cancel_token)

        if home_zip and plan.home is None:
            plan.warnings.append(f"Could not locate home base {home_zip}. Route starts at the first stop.")

        check_cancelled(cancel_token)
        plan.stops, plan.itinerary = self.sequencer.sequence(stops, plan.home, cancel_token)

        plan.unresolved = [stop for stop in plan.stops if stop.coordinate is None]
        if plan.unresolved:
            message = f"Could not locate {len(plan.unresolved)} address(es). Route may be incomplete."
            plan.warnings.append(message)
            log_warning(f"{rep_name}: {message}")

        if self.fetch_route:
            plan.route = self._build_route(plan, cancel_token)

        plan.directions_url = build_directions_url([stop.address for stop in plan.stops], home_zip)

        self.stats['routes_planned'] += 1
        self.stats['stops_planned'] += len(plan.stops)
        self.stats['unresolved_stops'] += len(plan.unresolved)
        self.stats['elapsed_seconds'] += time.time() - start_time

        log_info(
            f"Route for {rep_name} planned: {len(plan.stops)} stop(s), "
            f"{len(plan.unresolved)} unresolved, {len(plan.warnings)} warning(s)"
        )
        return plan

    def _resolve_all(self,
                     stops: List[Stop],
                     home_zip: Optional[str],
                     cancel_token: Optional[CancellationToken]) -> Optional[Coordinate]:
        """Resolve stops lacking coordinates plus the home base in one batch."""
        pending = [stop for stop in stops if stop.coordinate is None]
        addresses = [stop.address for stop in pending]
        if home_zip:
            addresses.append(home_base_address(home_zip))

        if not addresses:
            return None

        results = self.resolver.resolve(addresses, cancel_token)

        for stop, result in zip(pending, results):
            stop.coordinate = result.coordinates
            if result.coordinates is None:
                log_warning(f"Unresolved stop '{stop.address}': {result.error}")

        return results[-1].coordinates if home_zip else None

    def _build_route(self,
                     plan: RoutePlan,
                     cancel_token: Optional[CancellationToken]) -> Optional[RouteInfo]:
        points: List[Coordinate] = [stop.coordinate for stop in plan.stops if stop.coordinate is not None]
        if plan.home is not None:
            points = [plan.home] + points + [plan.home]

        if not points:
            return None
        if len(points) == 1:
            return RouteInfo.degenerate(points)

        route = self.route_fetcher.fetch_route(points, cancel_token)
        if route is None:
            self.stats['route_failures'] += 1
            plan.warnings.append("Could not fetch driving route. Showing stops only.")
        else:
            self.stats['routes_fetched'] += 1
        return route

    def get_stats(self) -> Dict[str, Any]:
        """
        Get planner counters combined with resolver cache and rate-limit status.
        """
        return {
            "planner": dict(self.stats),
            **self.resolver.get_stats(),
        }
