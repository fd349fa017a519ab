"""Timestamp parsing and display formatting for chat bubbles."""
import re
from datetime import datetime
from typing import Optional, Union

import pytz

from volunteerhub.config import DISPLAY_TIMEZONE

# "Z", "+06:00", "-0530" or "+06" at the end of the time part
_ZONE_SUFFIX = re.compile(r"(?:(Z)|([+-])(\d{2}):?(\d{2})?)$", re.IGNORECASE)

DISPLAY_FORMAT = "%I:%M %p"


def parse_utc(ts: Union[str, datetime, None]) -> datetime:
    """
    Parse a store timestamp into an aware datetime.

    The store keeps UTC but returns timestamps without a zone suffix, so any
    value lacking an explicit offset is read as UTC rather than local time.
    Short offsets are widened to ``±HH:MM`` before parsing. Missing values
    mean "now".
    """
    if ts is None or ts == "":
        return datetime.now(pytz.utc)
    if isinstance(ts, datetime):
        return ts if ts.tzinfo is not None else pytz.utc.localize(ts)

    date_part, sep, time_part = ts.strip().replace(" ", "T", 1).partition("T")
    offset = "+00:00"
    match = _ZONE_SUFFIX.search(time_part) if sep else None
    if match is not None:
        time_part = time_part[:match.start()]
        if not match.group(1):
            sign, hours, minutes = match.group(2, 3, 4)
            offset = f"{sign}{hours}:{minutes or '00'}"
    return datetime.fromisoformat(f"{date_part}T{time_part or '00:00:00'}{offset}")


def format_display_time(ts: Union[str, datetime, None], timezone: Optional[str] = None) -> str:
    """Render a timestamp as wall-clock time in the fixed display zone."""
    zone = pytz.timezone(timezone or DISPLAY_TIMEZONE)
    return parse_utc(ts).astimezone(zone).strftime(DISPLAY_FORMAT)
