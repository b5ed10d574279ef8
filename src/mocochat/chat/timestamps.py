"""ISO 8601 timestamps as exchanged with the server.

The server stamps chunks like ``2024-05-01T12:00:00.123456789Z``: nanosecond
precision and a ``Z`` suffix. Local timestamps are produced in the same shape
(microsecond precision) so both kinds compare correctly once parsed.
"""

import re
from datetime import UTC, datetime

_FRACTION = re.compile(r"\.(\d+)")


def now_timestamp() -> str:
    """Current UTC time as an ISO 8601 string with a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a server or local timestamp; None if missing or malformed."""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Truncate sub-microsecond digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
