"""Duration string parsing ("300ms", "10s", "5m", "1h30m").

Cluster keepalive: periodic liveness operations against a MongoDB cluster.
"""

import re
from typing import Optional

# Seconds per unit
UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_RE = re.compile(r"^[+-]?(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|ms|s|m|h))+$")


class DurationError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(value: str) -> float:
    """
    Parse a duration string into seconds.

    Accepts a sequence of decimal numbers each followed by a unit
    (ns, us, ms, s, m, h), optionally signed, e.g. "1h30m" or "1.5s".
    A bare "0" is accepted as zero.

    Args:
        value: Duration string

    Returns:
        Duration in seconds

    Raises:
        DurationError: If the string is not a valid duration
    """
    if value is None:
        raise DurationError("empty duration")
    text = value.strip()
    if text in ("0", "+0", "-0"):
        return 0.0
    if not text or not _DURATION_RE.match(text):
        raise DurationError(f"invalid duration {value!r}")

    sign = -1.0 if text.startswith("-") else 1.0
    total = 0.0
    for number, unit in _COMPONENT_RE.findall(text.lstrip("+-")):
        total += float(number) * UNIT_SECONDS[unit]
    return sign * total


def try_parse_duration(value: Optional[str]) -> Optional[float]:
    """Parse a duration, returning None instead of raising."""
    try:
        return parse_duration(value)
    except DurationError:
        return None


def format_duration(seconds: float) -> str:
    """Render seconds compactly for log lines ("5m0s", "10s", "250ms")."""
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{int(hours)}h{int(minutes)}m{secs:g}s"
    if minutes:
        return f"{int(minutes)}m{secs:g}s"
    return f"{secs:g}s"
