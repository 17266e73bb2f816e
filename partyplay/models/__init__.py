"""
Data Models Layer.

This package contains the song and queue-entry structures, the Pydantic
configuration model, and cache statistics.
"""

from .config import PartyConfig
from .song import QueueEntry, Song, normalize_vote
from .stats import CacheStats

__all__ = ["CacheStats", "PartyConfig", "QueueEntry", "Song", "normalize_vote"]
