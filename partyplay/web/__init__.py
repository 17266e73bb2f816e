"""
Web Layer.

This package exposes the party over HTTP and WebSockets and hosts the server
lifecycle.
"""

from .app import create_app
from .broadcaster import Broadcaster
from .server import PartyServer

__all__ = ["Broadcaster", "PartyServer", "create_app"]
