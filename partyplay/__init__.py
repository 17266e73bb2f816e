"""
partyplay - a crowd-voted party jukebox server.
"""

__version__ = "0.3.0"
