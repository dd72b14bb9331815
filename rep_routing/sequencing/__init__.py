"""
Sequencing module for the rep route planner.

This module provides functionality for:
- Bucketing stops by the customer's requested hour
- Greedy nearest-neighbour ordering within each bucket
- Laying out a day's itinerary with drive buffers
- Flagging stops whose scheduled window misses the requested one
- Exporting the itinerary as text and a directions link

Main classes:
- RouteSequencer: Orders stops and builds the itinerary
- Stop / ItineraryEntry: Route data
"""

from .itinerary_export import build_directions_url, format_itinerary_text
from .route_sequencer import (
    RouteSequencer,
    drive_buffer_minutes,
    haversine_km,
    stops_in_slot,
)
from .sequencing_models import ItineraryEntry, Stop
from .timeframes import (
    TIME_SLOTS,
    UNSCHEDULED_HOUR,
    parse_clock_minutes,
    parse_slot_range,
    parse_time_range,
    slot_id_for_timeframe,
    sortable_hour,
    times_overlap,
)

__all__ = [
    # Main classes
    "RouteSequencer",
    "Stop",
    "ItineraryEntry",

    # Helpers
    "drive_buffer_minutes",
    "haversine_km",
    "stops_in_slot",
    "sortable_hour",
    "parse_clock_minutes",
    "parse_time_range",
    "parse_slot_range",
    "times_overlap",
    "slot_id_for_timeframe",
    "TIME_SLOTS",
    "UNSCHEDULED_HOUR",

    # Export
    "build_directions_url",
    "format_itinerary_text",
]
