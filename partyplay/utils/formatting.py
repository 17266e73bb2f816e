"""
Helper functions for formatting data into human-readable strings.
"""

from typing import Any


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
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


def format_track_length(milliseconds: int) -> str:
    """Formats a song length the way players show it (e.g., '3:07')."""
    minutes, secs = divmod(max(0, int(milliseconds)) // 1000, 60)
    return f"{minutes}:{secs:02d}"


def display_artist(song: dict[str, Any]) -> str:
    """Returns the artist of a serialized song, or a placeholder when unknown."""
    return song.get("artist") or "Unknown Artist"
