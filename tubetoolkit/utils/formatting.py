"""
Helper functions for formatting data into human-readable strings and back.
"""

import re

_SIZE_RE = re.compile(r"^\s*~?\s*(\d+(?:\.\d+)?)\s*([KMGT]?i?B)?\s*$", re.IGNORECASE)

_UNIT_FACTORS = {
    "b": 1,
    "kb": 1000,
    "mb": 1000**2,
    "gb": 1000**3,
    "tb": 1000**4,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
}


def format_size(bytes_size: float) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_rate(bytes_per_second: float) -> str:
    """Formats a transfer rate in bytes per second (e.g., '1.2 MB/s')."""
    return f"{format_size(bytes_per_second)}/s"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = max(0, int(seconds))
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def parse_size(value: str | float | int | None) -> float:
    """
    Parses a size such as '3.21MiB', '500 KB' or '~1.2GiB' into bytes.

    Numbers are taken as bytes already. Anything unparseable yields 0.0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else 0.0
    match = _SIZE_RE.match(value)
    if not match:
        return 0.0
    number, unit = match.groups()
    return float(number) * _UNIT_FACTORS.get((unit or "b").lower(), 1)


def parse_rate(value: str | float | int | None) -> float:
    """
    Parses a transfer rate such as '1.20MiB/s' into bytes per second.

    Non-numeric or unrecognised rates ('Unknown', 'N/A', '') contribute 0.0.
    """
    if isinstance(value, str):
        value = value.strip()
        if value.lower().endswith("/s"):
            value = value[:-2]
    return parse_size(value)


def truncate_title(title: str, max_length: int = 35) -> str:
    """Shortens a title to fit a column, marking the cut with an ellipsis."""
    if len(title) <= max_length:
        return title
    return title[: max_length - 1] + "…"
