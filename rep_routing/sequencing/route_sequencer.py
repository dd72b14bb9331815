"""
Visiting order and itinerary for one rep's day.

Stops are grouped by the hour the customer asked for, each group is ordered
greedily by straight-line distance from wherever the rep currently is, and
a day plan is laid out from 7:30 AM with fixed visit lengths and a drive
buffer sized by how many stops there are. No traffic data is involved; the
times are estimates for the itinerary the rep receives.
"""

import math
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..cancellation import CancellationToken, check_cancelled
from ..config.logger_module import log_debug, log_info, log_warning
from ..geocoding.address_resolver import AddressResolver
from ..geocoding.geocoding_models import Coordinate
from .sequencing_models import JOB, TRAVEL, ItineraryEntry, Stop
from .timeframes import (
    TIME_SLOTS,
    format_clock,
    format_slot_label,
    parse_slot_range,
    slot_ranges_overlap,
    sortable_hour,
    times_overlap,
)

EARTH_RADIUS_KM = 6371.0

DAY_START_MINUTES = 7 * 60 + 30
JOB_DURATION_MINUTES = 90


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat))
         * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def drive_buffer_minutes(stop_count: int) -> int:
    """
    Drive time allowed between stops, chosen once per route.

    Light days get generous buffers; a full day packs stops tighter.
    """
    if stop_count <= 3:
        return 90
    if stop_count == 4:
        return 60
    return 30


def stops_in_slot(stops: Sequence[Stop], slot_label: str) -> List[Stop]:
    """
    Stops whose scheduled window overlaps a dispatch slot, order preserved.

    The customer's requested window is ignored; a stop moved to a later
    visit shows under the slot it was scheduled into.

    Args:
        stops: Stops of an already sequenced route
        slot_label: A slot label such as "10am - 1pm", or a slot id from TIME_SLOTS

    Returns:
        Matching stops; unscheduled stops never match
    """
    labels = dict(TIME_SLOTS)
    slot_range = parse_slot_range(labels.get(slot_label, slot_label))
    return [
        stop for stop in stops
        if slot_ranges_overlap(parse_slot_range(stop.scheduled_timeframe), slot_range)
    ]


class RouteSequencer:
    """
    Orders a rep's stops and lays out the day's itinerary.

    The output order is always a permutation of the input stops.
    """

    def __init__(self,
                 resolver: AddressResolver = None,
                 day_start_minutes: int = DAY_START_MINUTES,
                 job_duration_minutes: int = JOB_DURATION_MINUTES):
        """
        Initialize the sequencer.

        Args:
            resolver: Used to look up coordinates for stops that lack one
            day_start_minutes: Clock time of the first visit (minutes after midnight)
            job_duration_minutes: Length of each visit
        """
        self.resolver = resolver
        self.day_start_minutes = day_start_minutes
        self.job_duration_minutes = job_duration_minutes

    def sequence(self,
                 stops: Sequence[Stop],
                 start_ref: Optional[Coordinate] = None,
                 cancel_token: Optional[CancellationToken] = None
                 ) -> Tuple[List[Stop], List[ItineraryEntry]]:
        """
        Order stops and build the itinerary.

        Args:
            stops: The rep's stops, in their current order
            start_ref: Where the rep starts (home base), if known
            cancel_token: Optional token checked before any lookups

        Returns:
            (ordered stops with scheduled windows and reschedule flags,
             itinerary of 2n-1 entries)
        """
        if not stops:
            return [], []

        check_cancelled(cancel_token)
        stops = [replace(stop) for stop in stops]
        coordinates = self._coordinates_for(stops, cancel_token)

        ordered_indices = self.order_indices(stops, coordinates, start_ref)
        ordered = [stops[i] for i in ordered_indices]

        itinerary = self.build_itinerary(ordered)

        flagged = sum(1 for stop in ordered if stop.needs_reschedule)
        log_info(
            f"Sequenced {len(ordered)} stop(s), buffer "
            f"{drive_buffer_minutes(len(ordered))}m, {flagged} flagged for reschedule"
        )
        return ordered, itinerary

    def order_indices(self,
                      stops: Sequence[Stop],
                      coordinates: Dict[int, Coordinate],
                      start_ref: Optional[Coordinate] = None) -> List[int]:
        """
        Greedy nearest-neighbour order within requested-hour buckets.

        Buckets are visited by ascending hour, unscheduled stops last. The
        reference point carries over from one bucket to the next. Without a
        reference point the earliest stop in input order is taken.

        Returns:
            Indices into `stops` in visiting order
        """
        buckets: Dict[int, List[int]] = {}
        for index, stop in enumerate(stops):
            buckets.setdefault(sortable_hour(stop.original_timeframe), []).append(index)

        order: List[int] = []
        reference = start_ref

        for hour in sorted(buckets):
            unvisited = list(buckets[hour])
            log_debug(f"Ordering bucket {hour} with {len(unvisited)} stop(s)")

            while unvisited:
                nearest = 0
                if reference is not None:
                    min_distance = math.inf
                    for position, index in enumerate(unvisited):
                        coord = coordinates.get(index)
                        if coord is None:
                            continue
                        distance = haversine_km(reference, coord)
                        if distance < min_distance:
                            min_distance = distance
                            nearest = position

                chosen = unvisited.pop(nearest)
                order.append(chosen)
                if chosen in coordinates:
                    reference = coordinates[chosen]

        return order

    def build_itinerary(self, ordered: List[Stop]) -> List[ItineraryEntry]:
        """
        Lay out visits from the day start, updating each stop in place.

        Each stop gets its scheduled window and a reschedule flag when that
        window does not overlap what the customer asked for.
        """
        buffer = drive_buffer_minutes(len(ordered))
        clock = self.day_start_minutes
        itinerary: List[ItineraryEntry] = []

        for position, stop in enumerate(ordered):
            start, end = clock, clock + self.job_duration_minutes

            stop.scheduled_timeframe = format_slot_label(start, end)
            stop.needs_reschedule = bool(
                stop.original_timeframe
                and not times_overlap(stop.original_timeframe, stop.scheduled_timeframe)
            )
            if stop.needs_reschedule:
                log_debug(
                    f"Stop '{stop.address}' requested {stop.original_timeframe}, "
                    f"scheduled {stop.scheduled_timeframe}"
                )

            itinerary.append(ItineraryEntry(
                kind=JOB,
                time_range=f"{format_clock(start)} - {format_clock(end)}",
                duration_minutes=self.job_duration_minutes,
                stop=stop,
            ))
            clock = end

            if position < len(ordered) - 1:
                itinerary.append(ItineraryEntry(
                    kind=TRAVEL,
                    time_range=f"(~{buffer} mins drive)",
                    duration_minutes=buffer,
                ))
                clock += buffer

        return itinerary

    def _coordinates_for(self,
                         stops: List[Stop],
                         cancel_token: Optional[CancellationToken]) -> Dict[int, Coordinate]:
        """Known coordinates by stop index, resolving missing ones if possible."""
        coordinates = {
            index: stop.coordinate
            for index, stop in enumerate(stops)
            if stop.coordinate is not None
        }

        missing = [index for index in range(len(stops)) if index not in coordinates]
        if not missing or self.resolver is None:
            return coordinates

        results = self.resolver.resolve([stops[i].address for i in missing], cancel_token)
        for index, result in zip(missing, results):
            if result.coordinates is not None:
                stops[index].coordinate = result.coordinates
                coordinates[index] = result.coordinates
            else:
                log_warning(
                    f"No coordinates for '{stops[index].address}' ({result.error}); "
                    "ordering it without distance"
                )
        return coordinates
