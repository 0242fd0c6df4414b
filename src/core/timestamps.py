"""RFC 3339 timestamp rendering and parsing.

Stored timestamps use second precision with a ``Z`` suffix for UTC
and a numeric offset otherwise. Naive datetimes are treated as UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def format_rfc3339(value: datetime) -> str:
    """Render a datetime as an RFC 3339 string with second precision.

    Args:
        value: Timestamp to render.

    Returns:
        Textual timestamp such as ``2024-05-01T10:00:00Z``.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value.utcoffset() == timezone.utc.utcoffset(None):
        return value.replace(microsecond=0, tzinfo=None).isoformat() + "Z"
    return value.replace(microsecond=0).isoformat()


def parse_rfc3339(raw_value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Args:
        raw_value: Textual timestamp.

    Returns:
        Timezone-aware datetime.

    Raises:
        ValueError: If the value is not a valid timestamp.
    """
    text = raw_value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_PATTERN.sub(_pad_fraction, text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _pad_fraction(match: re.Match[str]) -> str:
    # fromisoformat before 3.11 only accepts 3 or 6 fractional digits
    return "." + match.group(1)[:6].ljust(6, "0")
