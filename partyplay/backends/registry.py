"""
Startup-resolved registry of media backends.
"""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from partyplay.exceptions import BackendError, BackendNotFoundError
from partyplay.models.config import PartyConfig
from partyplay.models.song import Song

from .base import Backend
from .http_catalog import HttpCatalogBackend

log = logging.getLogger(__name__)

# Backend types selectable through the ``type`` key of a [backend:<name>] section.
BACKEND_TYPES: dict[str, type[Backend]] = {
    "http_catalog": HttpCatalogBackend,
}


@dataclass
class SearchOutcome:
    """Aggregated search results, with per-backend failures kept apart."""

    songs: list[Song] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class BackendRegistry:
    """Maps backend names to initialized Backend instances."""

    def __init__(self) -> None:
        self._backends: dict[str, Backend] = {}

    @classmethod
    def from_config(cls, config: PartyConfig) -> "BackendRegistry":
        """
        Builds (but does not initialize) every backend enabled in the config.

        Raises:
            BackendError: If a backend declares an unknown type or bad options.
        """
        registry = cls()
        for name in config.backends:
            options = config.backend_options.get(name, {})
            backend_type = options.get("type", "")
            backend_cls = BACKEND_TYPES.get(backend_type)
            if backend_cls is None:
                raise BackendError(
                    f"Unknown type '{backend_type}' for backend '{name}'. "
                    f"Available: {', '.join(sorted(BACKEND_TYPES))}."
                )
            registry.register(backend_cls(name, options))
        return registry

    def register(self, backend: Backend) -> None:
        if backend.name in self._backends:
            raise BackendError(f"Backend '{backend.name}' is already registered.")
        self._backends[backend.name] = backend

    def unregister(self, name: str) -> Backend | None:
        return self._backends.pop(name, None)

    def get(self, name: str) -> Backend:
        try:
            return self._backends[name]
        except KeyError:
            raise BackendNotFoundError(f"No backend named '{name}'.") from None

    @property
    def names(self) -> list[str]:
        return list(self._backends)

    def __contains__(self, name: object) -> bool:
        return name in self._backends

    def __iter__(self) -> Iterator[Backend]:
        return iter(list(self._backends.values()))

    def __len__(self) -> int:
        return len(self._backends)

    async def initialize_all(self) -> dict[str, str]:
        """
        Initializes every backend concurrently.

        Backends that fail are logged and unregistered so that the rest of the
        server never sees them.

        Returns:
            Error messages keyed by the name of each backend that failed.
        """
        backends = list(self._backends.values())
        results = await asyncio.gather(
            *(backend.init() for backend in backends), return_exceptions=True
        )

        errors: dict[str, str] = {}
        for backend, result in zip(backends, results):
            if isinstance(result, BaseException):
                errors[backend.name] = str(result)
                log.error(
                    f"[red]✗ Backend '{backend.name}' failed to initialize: "
                    f"{result}[/red]"
                )
                self.unregister(backend.name)
            else:
                log.info(f"[green]✓ Backend '{backend.name}' initialized.[/green]")
        return errors

    async def reinitialize(self, name: str) -> None:
        """
        Re-establishes a backend's connection after a transport failure.

        Raises:
            BackendNotFoundError: If the backend is not registered.
            BackendError: If the backend cannot reconnect.
        """
        backend = self.get(name)
        log.info(f"Reconnecting backend '{name}'...")
        await backend.reconnect()

    async def search(self, terms: str, limit: int = 10) -> SearchOutcome:
        """Searches every backend concurrently and merges the results."""
        backends = list(self._backends.values())
        results = await asyncio.gather(
            *(backend.search(terms, limit) for backend in backends),
            return_exceptions=True,
        )

        outcome = SearchOutcome()
        for backend, result in zip(backends, results):
            if isinstance(result, BaseException):
                outcome.errors[backend.name] = str(result)
                log.warning(
                    f"[yellow]Search on '{backend.name}' failed: {result}[/yellow]"
                )
            else:
                outcome.songs.extend(result)
        return outcome

    async def close_all(self) -> None:
        for backend in list(self._backends.values()):
            try:
                await backend.close()
            except Exception as e:
                log.debug(f"Error while closing backend '{backend.name}': {e}")
