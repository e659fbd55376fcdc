"""Helpers for the encoder's elapsed-time progress token."""
import re
from typing import Optional

# ffmpeg stats line: "frame=  120 fps= 30 ... time=00:00:05.00 bitrate=..."
TIME_TOKEN = re.compile(r"time=\s*(\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)")


def parse_elapsed_seconds(line: str) -> Optional[float]:
    """
    Extract elapsed seconds from a `time=HH:MM:SS.fraction` token.

    Args:
        line: One line of encoder diagnostic output

    Returns:
        Elapsed seconds, or None if the line carries no usable token
    """
    match = TIME_TOKEN.search(line)
    if not match:
        return None

    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def compute_progress(elapsed_seconds: float, total_seconds: float) -> float:
    """
    Convert elapsed encoder time to a percentage of the total duration.

    Returns 0.0 when the total is unknown (zero or negative).
    """
    if total_seconds <= 0:
        return 0.0
    percent = (elapsed_seconds / total_seconds) * 100
    return min(max(percent, 0.0), 100.0)


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm for encoder seek arguments."""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"
