"""Size and timestamp parsing for engine CLI output."""

import re
from datetime import datetime, timedelta, timezone

# Engine CLIs print decimal units (1kB == 1000 B); binary suffixes are
# accepted for user input.
_UNITS = {
    "": 1,
    "b": 1,
    "k": 1000,
    "kb": 1000,
    "m": 1000**2,
    "mb": 1000**2,
    "g": 1000**3,
    "gb": 1000**3,
    "t": 1000**4,
    "tb": 1000**4,
    "p": 1000**5,
    "pb": 1000**5,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
    "pib": 1024**5,
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")
_RELATIVE_RE = re.compile(
    r"^(?:about\s+)?(an?|\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago$", re.IGNORECASE
)
_RELATIVE_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
}
_ABSOLUTE_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z %Z",
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
)


def parse_size(text: str | int | None) -> int | None:
    """
    Parse a human size such as ``"1.2GB"`` or ``"12kB (virtual 80MB)"``.

    Returns:
        Size in bytes, or None when the value is missing or unparseable
    """
    if text is None:
        return None
    if isinstance(text, int):
        return text
    # "12kB (virtual 80MB)" -> only the writable layer counts
    head = str(text).split("(", 1)[0].strip()
    match = _SIZE_RE.match(head)
    if not match:
        return None
    number, unit = match.groups()
    factor = _UNITS.get(unit.lower())
    if factor is None:
        return None
    return int(float(number) * factor)


def format_bytes(num: int | float | None) -> str:
    if num is None:
        return "?"
    value = float(num)
    for unit in ("B", "kB", "MB", "GB", "TB"):
        if abs(value) < 1000 or unit == "TB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{value:.1f} TB"


def parse_timestamp(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse absolute engine timestamps and relative ``"3 weeks ago"`` forms."""
    if not text:
        return None
    raw = str(text).strip()

    # Go time strings carry nanoseconds and a trailing zone abbreviation
    # ("2024-01-15 10:20:30.123456789 +0000 UTC").
    cleaned = re.sub(r"\.\d+", "", raw).replace("Z", "+0000")
    for fmt in _ABSOLUTE_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        # Keep everything timezone-aware so timestamps stay comparable.
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    match = _RELATIVE_RE.match(raw)
    if match:
        count, unit = match.groups()
        amount = 1 if count.lower() in ("a", "an") else int(count)
        reference = now or datetime.now(timezone.utc)
        return reference - timedelta(seconds=amount * _RELATIVE_SECONDS[unit.lower()])
    return None
