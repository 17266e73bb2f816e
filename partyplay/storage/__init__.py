"""
Storage Layer.

This package handles all data persistence: the configuration file and the
local media cache.
"""

from .cache import CachePipeline
from .config_manager import ConfigManager

__all__ = ["CachePipeline", "ConfigManager"]
