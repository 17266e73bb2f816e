"""
Core Logic Layer.

This package holds the voting queue and the playback scheduler that consumes it.
"""

from .ranked_queue import RankedQueue
from .scheduler import PlaybackScheduler, PlaybackState

__all__ = ["PlaybackScheduler", "PlaybackState", "RankedQueue"]
