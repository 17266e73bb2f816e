"""Abstract base class for media backends."""

from abc import ABC, abstractmethod
from typing import Any

from partyplay.models.song import Song


class Backend(ABC):
    """
    Interface that every media source must implement.

    A backend only knows how to find songs and where their audio stream
    lives. Downloading, retrying and caching are handled uniformly by
    :class:`partyplay.storage.cache.CachePipeline` on top of
    :meth:`stream_url`, so adding a source never touches playback logic.
    """

    #: File extension of the artifacts this backend produces.
    extension: str = "mp3"

    def __init__(self, name: str, options: dict[str, Any] | None = None):
        self.name = name
        self.options = dict(options or {})

    @abstractmethod
    async def init(self) -> None:
        """
        Prepares the backend for use (sessions, logins, health checks).

        Raises:
            BackendError: If the backend cannot become ready.
        """

    @abstractmethod
    async def search(self, terms: str, limit: int = 10) -> list[Song]:
        """
        Searches the backend for songs matching *terms*.

        Raises:
            BackendError: If the backend rejects or fails the search.
        """

    @abstractmethod
    async def stream_url(self, song_id: str) -> str:
        """
        Returns a URL from which the song's audio can be downloaded.

        Transport failures (``aiohttp.ClientConnectionError``,
        ``asyncio.TimeoutError``) must propagate unchanged so the caller can
        reconnect and retry; every other failure is a ``BackendError``.
        """

    async def reconnect(self) -> None:
        """Tears down and re-establishes the backend's connection."""
        await self.close()
        await self.init()

    async def close(self) -> None:
        """Releases any resources held by the backend."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
