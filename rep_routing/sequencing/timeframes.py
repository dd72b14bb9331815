"""
Parsing of dispatcher-entered time windows such as "7:30am - 9am" or "1-4".

Customers' requested windows are free text and often omit am/pm. Two
inference rules exist for bare hours and both are kept exactly as the
dispatch board applies them:

- sequencing and reschedule checks: hours 1-6 without am/pm are PM
- slot filtering: hours 1-7 (never 10, 11 or 12) without am/pm are PM

Changing either rule changes which customers get flagged for a reschedule
call, so they are deliberately not unified.
"""

import re
from typing import List, Optional, Tuple

UNSCHEDULED_HOUR = 99

MINUTES_PER_DAY = 24 * 60

_LEADING_TIME_PATTERN = re.compile(r'^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?', re.IGNORECASE)
_TIME_PATTERN = re.compile(r'(\d{1,2})(?::(\d{2}))?\s*(am|pm)?', re.IGNORECASE)

# Standard dispatch windows (slot id, label)
TIME_SLOTS: List[Tuple[str, str]] = [
    ("ts-1", "7:30am - 10am"),
    ("ts-2", "10am - 1pm"),
    ("ts-3", "1pm - 4pm"),
    ("ts-4", "4pm - 7pm"),
]

# Start-hour ranges [start, end) in 24h time mapped to slot ids
_SLOT_START_HOURS = (
    (7, 10, "ts-1"),
    (10, 13, "ts-2"),
    (13, 16, "ts-3"),
    (16, 19, "ts-4"),
)


def _to_24_hour(hour: int, period: Optional[str]) -> int:
    period = period.lower() if period else None
    if period == "pm" and hour < 12:
        hour += 12
    if period == "am" and hour == 12:
        hour = 0
    return hour


def sortable_hour(timeframe: Optional[str]) -> int:
    """
    Hour (0-23) a requested window starts at, for bucketing stops.

    Bare hours 1-6 are taken as PM. Missing or unparseable text returns
    UNSCHEDULED_HOUR so those stops sort last.
    """
    if not timeframe:
        return UNSCHEDULED_HOUR

    match = _LEADING_TIME_PATTERN.match(timeframe)
    if not match:
        return UNSCHEDULED_HOUR

    hour = int(match.group(1))
    period = match.group(3)
    hour = _to_24_hour(hour, period)
    if not period and 1 <= hour <= 6:
        hour += 12
    return hour


def parse_clock_minutes(text: str) -> int:
    """
    Minute of day for one side of a window ("9:30am" -> 570).

    Text with no recognisable time counts as midnight (0). Bare hours 1-6
    are taken as PM.
    """
    match = _TIME_PATTERN.search(text)
    if not match:
        return 0

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    period = match.group(3)
    hour = _to_24_hour(hour, period)
    if not period and 1 <= hour <= 6:
        hour += 12
    return hour * 60 + minute


def parse_time_range(timeframe: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Parse "start - end" into (start_minute, end_minute).

    Returns:
        The interval, or None when the text has no '-' separated range
    """
    if not timeframe:
        return None

    parts = [part.strip() for part in timeframe.split('-')]
    if len(parts) < 2:
        return None
    return parse_clock_minutes(parts[0]), parse_clock_minutes(parts[1])


def times_overlap(requested: Optional[str], scheduled: Optional[str]) -> bool:
    """
    Whether a requested window and a scheduled window intersect.

    Boundaries are exclusive: 7:30-9:00 and 9:00-10:30 do not overlap.
    When either side cannot be parsed the windows are assumed compatible,
    so no reschedule is suggested on incomplete data.
    """
    first = parse_time_range(requested)
    second = parse_time_range(scheduled)
    if first is None or second is None:
        return True
    return first[0] < second[1] and second[0] < first[1]


def parse_slot_minutes(text: str) -> Optional[int]:
    """
    Minute of day using the slot-filter rule (bare 1-7 are PM).

    Returns:
        Minutes since midnight, or None if no time is found
    """
    match = _TIME_PATTERN.search(text)
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    period = match.group(3)
    hour = _to_24_hour(hour, period)
    if not period and 1 <= hour <= 7 and hour not in (10, 11, 12):
        hour += 12
    return hour * 60 + minute


def parse_slot_range(timeframe: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Parse a slot label; a single time is treated as a two-hour window.
    """
    if not timeframe:
        return None

    parts = [part.strip() for part in timeframe.split('-')]
    start = parse_slot_minutes(parts[0])
    if start is None:
        return None

    end = parse_slot_minutes(parts[1]) if len(parts) > 1 else start + 120
    if end is None:
        return None
    return start, end


def slot_ranges_overlap(first: Optional[Tuple[int, int]],
                        second: Optional[Tuple[int, int]]) -> bool:
    """Strict interval intersection; a missing range never overlaps."""
    if first is None or second is None:
        return False
    return first[0] < second[1] and second[0] < first[1]


def slot_id_for_timeframe(timeframe: Optional[str]) -> Optional[str]:
    """
    Map a requested window to one of TIME_SLOTS by its start hour.

    Only an explicit am/pm shifts the hour; "1-4" maps to nothing.
    """
    if not timeframe:
        return None

    match = _TIME_PATTERN.search(timeframe)
    if not match:
        return None

    hour = _to_24_hour(int(match.group(1)), match.group(3))
    for start, end, slot_id in _SLOT_START_HOURS:
        if start <= hour < end:
            return slot_id
    return None


def format_clock(minutes: int) -> str:
    """Display form of a minute of day: 450 -> "7:30 AM"."""
    minutes %= MINUTES_PER_DAY
    hour, minute = divmod(minutes, 60)
    period = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {period}"


def format_slot_label(start_minutes: int, end_minutes: int) -> str:
    """Compact window label stored on a stop: "7:30am-9:00am"."""
    start = format_clock(start_minutes).replace(" ", "").lower()
    end = format_clock(end_minutes).replace(" ", "").lower()
    return f"{start}-{end}"
