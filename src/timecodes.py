"""Conversions between ``HH:MM:SS`` timecodes and seconds."""

from __future__ import annotations


def seconds_to_timecode(seconds: float) -> str:
    """Format seconds as a canonical ``HH:MM:SS`` string (fractions truncated)."""
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def timecode_to_seconds(timecode: str) -> float:
    """Parse ``HH:MM:SS``, ``MM:SS`` or plain seconds into seconds.

    An empty string is treated as zero.

    Raises:
        ValueError: If the value has more than three ``:``-separated parts or
            any part is not numeric.
    """
    value = timecode.strip()
    if not value:
        return 0.0

    parts = value.split(":")
    if len(parts) > 3:
        raise ValueError(f"Invalid timecode: {timecode!r}")

    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return seconds
