"""
Shared utility functions.
"""

import math
from typing import Any
from datetime import datetime, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 with a trailing Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_float(value: Any) -> float:
    """Graph API numbers arrive as strings; anything unparseable counts as 0."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_int(value: Any) -> int:
    """Integer metric from a Graph API string ("1234" or "1234.0"); unparseable → 0."""
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(to_float(value))
