"""
Stops and itinerary entries produced by the route sequencer.
"""

from dataclasses import dataclass
from typing import Optional

from ..geocoding.geocoding_models import Coordinate

JOB = "job"
TRAVEL = "travel"


@dataclass
class Stop:
    """A job on a rep's route."""

    address: str
    stop_id: Optional[str] = None

    # Customer's requested window as entered, e.g. "7:30am - 9am"
    original_timeframe: Optional[str] = None

    # Known location; resolved from the address when missing
    coordinate: Optional[Coordinate] = None

    customer_name: Optional[str] = None
    city: Optional[str] = None
    notes: Optional[str] = None

    # Filled in by sequencing
    scheduled_timeframe: Optional[str] = None
    needs_reschedule: bool = False


@dataclass
class ItineraryEntry:
    """One line of a rep's day: a job visit or the drive to the next one."""

    kind: str
    time_range: str
    duration_minutes: int
    stop: Optional[Stop] = None

    def __post_init__(self):
        if self.kind not in (JOB, TRAVEL):
            raise ValueError(f"Invalid itinerary entry kind: {self.kind}. Must be '{JOB}' or '{TRAVEL}'")
        if self.kind == JOB and self.stop is None:
            raise ValueError("Job entries require a stop")

    @property
    def duration_label(self) -> str:
        """Short duration text: job visits as "1h 30m", drives as "90m"."""
        if self.kind == TRAVEL:
            return f"{self.duration_minutes}m"
        hours, minutes = divmod(self.duration_minutes, 60)
        if hours and minutes:
            return f"{hours}h {minutes}m"
        if hours:
            return f"{hours}h"
        return f"{minutes}m"
