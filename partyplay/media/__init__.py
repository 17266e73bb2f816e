"""
Media Processing Layer.

This package is responsible for streaming audio files into the cache and
probing them for their playable duration.
"""

from .downloader import Downloader, Redirected, close_connection_pool
from .probe import probe_duration

__all__ = ["Downloader", "Redirected", "close_connection_pool", "probe_duration"]
