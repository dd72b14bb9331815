#!/usr/bin/env python3
"""
Rep Route Planner - command line entry point

Plans one rep's day from a JSON list of stops and prints the itinerary text
(or the full plan as JSON).

Usage:
    rep-route stops.json --rep-name NAME [options]

Options:
    --home-zip ZIP       Rep's home ZIP code; route starts and ends there
    --cache-dir PATH     Directory for the geocode cache (default: .cache_geocode)
    --log-level LEVEL    Logging level (default: INFO)
    --no-route           Skip fetching driving distance and geometry
    --json               Print the plan as JSON instead of itinerary text

The stops file holds a JSON array. Each item is either an address string or
an object with "address" and optional "id", "timeframe", "customer_name",
"city", "notes", "lat" and "lon".
"""

import argparse
import json
import signal
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, List

from .cancellation import CancellationToken, OperationCancelledError
from .config.config_module import ConfigError, load_config
from .config.logger_module import initialize_logger, log_error, log_info
from .geocoding.address_resolver import AddressResolver
from .geocoding.geocoding_config import GeocoderConfig
from .geocoding.geocoding_models import Coordinate
from .route_planner import RoutePlan, RoutePlanner
from .sequencing.itinerary_export import format_itinerary_text
from .sequencing.sequencing_models import Stop


def _stop_from_item(item: Any, position: int) -> Stop:
    if isinstance(item, str):
        return Stop(address=item)

    if not isinstance(item, dict) or not item.get("address"):
        raise ValueError(f"Stop #{position} must be an address string or an object with an 'address'")

    coordinate = None
    if item.get("lat") is not None and item.get("lon") is not None:
        coordinate = Coordinate(lat=float(item["lat"]), lon=float(item["lon"]))

    return Stop(
        address=str(item["address"]),
        stop_id=str(item["id"]) if item.get("id") is not None else None,
        original_timeframe=item.get("timeframe"),
        coordinate=coordinate,
        customer_name=item.get("customer_name"),
        city=item.get("city"),
        notes=item.get("notes"),
    )


def load_stops(path: str) -> List[Stop]:
    """
    Read stops from a JSON file.

    Raises:
        ValueError: If the file is not a JSON array of stops
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("Stops file must contain a JSON array")

    return [_stop_from_item(item, i) for i, item in enumerate(data, 1)]


def print_plan(plan: RoutePlan, as_json: bool = False) -> None:
    """Print a plan as itinerary text or JSON."""
    if as_json:
        print(json.dumps(plan.to_dict(), indent=2))
        return

    date_label = date.today().strftime("%A, %B %d").replace(" 0", " ")
    print(format_itinerary_text(plan.rep_name, date_label, plan.itinerary, plan.directions_url))

    if plan.route:
        print(f"\nTotal drive: {plan.route.distance_miles:.1f} mi, "
              f"{plan.route.duration_minutes:.0f} min")

    for warning in plan.warnings:
        print(f"\n⚠️  {warning}")


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Rep Route Planner - Sequence a rep's stops and build the day's itinerary",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s stops.json --rep-name "Dana"
  %(prog)s stops.json --rep-name "Dana" --home-zip 85201
  %(prog)s stops.json --rep-name "Dana" --no-route --json
  %(prog)s stops.json --rep-name "Dana" --cache-dir ./geocode --log-level DEBUG
        """
    )

    # Required arguments
    parser.add_argument('stops', help='JSON file with the day\'s stops')
    parser.add_argument('--rep-name', required=True, help='Name of the rep the route is for')

    # Optional arguments
    parser.add_argument('--home-zip', type=str,
                        help='Home base ZIP code; the route starts and ends there')

    parser.add_argument('--cache-dir', type=str,
                        help='Directory for the geocode cache (default: .cache_geocode)')

    parser.add_argument('--log-level',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='INFO',
                        help='Logging level (default: INFO)')

    parser.add_argument('--no-route', action='store_true',
                        help='Skip fetching driving distance and geometry')

    parser.add_argument('--json', action='store_true',
                        help='Print the plan as JSON')

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point for the rep route planner."""
    args = parse_arguments(argv)

    initialize_logger(log_level=args.log_level)
    load_config()

    if not Path(args.stops).exists():
        print(f"\n❌ Stops file not found: {args.stops}")
        return 1

    try:
        stops = load_stops(args.stops)
    except (OSError, TypeError, ValueError) as e:
        print(f"\n❌ Could not read stops: {e}")
        return 1

    try:
        geocoder_config = GeocoderConfig.from_env()
        if args.cache_dir:
            geocoder_config = replace(geocoder_config, cache_dir=args.cache_dir)
    except (ConfigError, ValueError) as e:
        print(f"\n❌ Configuration Error: {e}")
        return 1

    planner = RoutePlanner(
        resolver=AddressResolver(config=geocoder_config),
        fetch_route=not args.no_route,
    )

    # Ctrl+C stops at the next request boundary instead of mid-write
    cancel_token = CancellationToken()
    previous_handler = signal.signal(
        signal.SIGINT, lambda signum, frame: cancel_token.cancel("Interrupted by user")
    )

    try:
        plan = planner.plan_route(args.rep_name, stops, args.home_zip, cancel_token)
    except OperationCancelledError as e:
        log_error(f"Route planning cancelled: {e}")
        print(f"\n❌ Cancelled: {e}")
        return 130
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print_plan(plan, as_json=args.json)
    log_info(f"Planner stats: {planner.get_stats()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
