"""
Backend for any JSON catalog service exposing search and stream-URL endpoints.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from partyplay.exceptions import BackendError
from partyplay.models.song import Song
from partyplay.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError

from .base import Backend

log = logging.getLogger(__name__)


class HttpCatalogBackend(Backend):
    """
    Async client for a catalog service speaking a small JSON protocol.

    Endpoints (relative to ``base_url``):
    - ``GET status``: any 2xx means the service is ready.
    - ``GET search?q=<terms>&limit=<n>``: a list of songs, or ``{"songs": [...]}``.
    - ``GET tracks/<id>/stream``: ``{"url": "<downloadable location>"}``.

    Options:
        base_url: Root URL of the catalog (required).
        extension: Extension of the audio files it serves (default ``mp3``).
        timeout: Total timeout in seconds for catalog API calls (default 30).
    """

    def __init__(self, name: str, options: Optional[Dict[str, Any]] = None):
        super().__init__(name, options)
        base_url = self.options.get("base_url", "")
        if not base_url:
            raise BackendError(f"Backend '{name}' requires a 'base_url' option.")
        self.base_url: str = base_url.rstrip("/") + "/"
        self.extension = self.options.get("extension", "mp3")
        self.timeout = float(self.options.get("timeout", 30))

        self._session: Optional[aiohttp.ClientSession] = None
        self._circuit_breaker = CircuitBreaker(name, failure_threshold=5)

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout, connect=10),
            )

    async def init(self) -> None:
        await self._initialize_session()
        self._circuit_breaker.reset()
        try:
            await self.api_call("status")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self.close()
            raise BackendError(f"Catalog '{self.name}' is unreachable: {e}") from e
        log.debug(f"Catalog backend '{self.name}' ready at {self.base_url}")

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def api_call(self, endpoint: str, **params: Any) -> Any:
        """
        Makes a catalog API call through the circuit breaker.

        HTTP error statuses are converted to ``BackendError``; transport errors
        propagate unchanged.
        """
        await self._initialize_session()

        try:
            async with self._circuit_breaker:
                start_time = time.monotonic()
                async with self._session.get(
                    self.base_url + endpoint, params=params or None
                ) as r:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    log.debug(
                        f"Catalog '{self.name}' {endpoint} -> {r.status} "
                        f"({duration_ms:.0f} ms)"
                    )
                    if r.status >= 400:
                        raise BackendError(
                            f"Catalog '{self.name}' answered {r.status} for {endpoint}."
                        )
                    if r.content_type != "application/json":
                        return await r.text()
                    return await r.json()
        except CircuitBreakerError as e:
            raise BackendError(str(e)) from e

    async def search(self, terms: str, limit: int = 10) -> List[Song]:
        try:
            data = await self.api_call("search", q=terms, limit=limit)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendError(f"Error while searching '{self.name}': {e}") from e

        items = data.get("songs", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise BackendError(f"Catalog '{self.name}' returned a malformed result.")

        songs = []
        for item in items[:limit]:
            if not isinstance(item, dict) or "id" not in item:
                log.debug(f"Skipping malformed search entry from '{self.name}'.")
                continue
            songs.append(Song.from_dict(item, backend=self.name))
        return songs

    async def stream_url(self, song_id: str) -> str:
        data = await self.api_call(f"tracks/{quote(song_id, safe='')}/stream")
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise BackendError(
                f"Catalog '{self.name}' returned no stream URL for '{song_id}'."
            )
        return url
