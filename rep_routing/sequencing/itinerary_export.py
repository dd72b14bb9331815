"""
Shareable output for a sequenced route: a Google Maps directions link and
the plain-text itinerary sent to the rep.
"""

from typing import List, Optional, Sequence
from urllib.parse import quote

from .sequencing_models import JOB, ItineraryEntry

DIRECTIONS_BASE_URL = "https://www.google.com/maps/dir/"
RESCHEDULE_WARNING = "WARNING: POTENTIAL RESCHEDULE NECESSARY"


def build_directions_url(addresses: Sequence[str], home_zip: Optional[str] = None) -> str:
    """
    Build a multi-stop Google Maps directions link.

    Args:
        addresses: Stop addresses in visiting order
        home_zip: Rep's home ZIP code; when given the route starts and ends there

    Returns:
        The directions URL, or "#" when there are no stops
    """
    if not addresses:
        return "#"

    waypoints = [quote(address, safe="") for address in addresses]
    if home_zip:
        home = quote(f"{home_zip}, Arizona", safe="")
        waypoints = [home] + waypoints + [home]

    return DIRECTIONS_BASE_URL + "/".join(waypoints)


def format_itinerary_text(rep_name: str,
                          date_label: str,
                          itinerary: Sequence[ItineraryEntry],
                          directions_url: str) -> str:
    """
    Render the itinerary as the text message sent to a rep.

    Only job entries are listed; drive buffers are implied by the times.
    """
    lines: List[str] = [f"Route for {rep_name} - {date_label}", ""]

    for entry in itinerary:
        if entry.kind != JOB:
            continue

        stop = entry.stop
        city = stop.city.upper() if stop.city else "LOCATION"
        header = f"{stop.original_timeframe or entry.time_range}: {city}"
        if stop.needs_reschedule:
            header += f" (Scheduled: {entry.time_range}) - {RESCHEDULE_WARNING}"

        lines.append(header)
        lines.append(stop.address)
        if stop.notes:
            lines.append(f"Notes: {stop.notes}")
        if stop.customer_name:
            lines.append(f"Customer: {stop.customer_name}")
        lines.append("")

    lines.append("Google Maps Route:")
    lines.append(directions_url)
    return "\n".join(lines)
