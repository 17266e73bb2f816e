"""
Media Backend Layer.

This package defines the backend interface, the startup-resolved registry, and
the built-in HTTP catalog backend.
"""

from .base import Backend
from .http_catalog import HttpCatalogBackend
from .registry import BACKEND_TYPES, BackendRegistry, SearchOutcome

__all__ = [
    "BACKEND_TYPES",
    "Backend",
    "BackendRegistry",
    "HttpCatalogBackend",
    "SearchOutcome",
]
