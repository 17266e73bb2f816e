"""
Handles the low-level streaming of audio files over HTTP into the media cache.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiohttp
from yarl import URL

from partyplay.exceptions import DownloadStatusError

log = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(max_workers: int = 8) -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for downloads.

    Args:
        max_workers: Maximum concurrent connections per media host.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_workers * 2,
            limit_per_host=max_workers,
            ttl_dns_cache=600,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=60)
        _connection_pool = aiohttp.ClientSession(connector=connector, timeout=timeout)
        log.debug(f"Created download pool with limit_per_host={max_workers}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            log.debug("Shared downloader connection pool closed.")
        _connection_pool = None


class Redirected(Exception):
    """Signals that the server answered with a redirect instead of the file."""

    def __init__(self, location: str):
        super().__init__(f"Redirected to {location}")
        self.location = location


class Downloader:
    """
    Performs a single streaming transfer into a temporary ``.part`` file.

    The destination only appears once the whole body has been received and the
    file closed, via an atomic rename. Any other outcome removes the partial
    file. Redirects are not followed here: they raise :class:`Redirected` so
    the caller can restart the transfer from scratch.
    """

    CHUNK_SIZE = 131072  # 128 KB

    def __init__(
        self,
        max_workers: int = 8,
        session: aiohttp.ClientSession | None = None,
    ):
        self.max_workers = max_workers
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_connection_pool(self.max_workers)

    @staticmethod
    def partial_path(destination: Path) -> Path:
        return destination.with_name(destination.name + ".part")

    async def download_file(self, url: str, destination: Path) -> int:
        """
        Streams *url* into *destination*.

        Returns:
            The number of bytes written.

        Raises:
            Redirected: On a 3xx answer carrying a ``Location`` header.
            DownloadStatusError: On any other non-200 answer.
            aiohttp.ClientError, asyncio.TimeoutError: On transport failures.
        """
        temp_path = self.partial_path(destination)
        committed = False
        try:
            session = await self._get_session()
            async with session.get(url, allow_redirects=False) as response:
                if response.status in REDIRECT_STATUSES:
                    location = response.headers.get("Location")
                    if not location:
                        raise DownloadStatusError(response.status, url)
                    # Relative Location headers resolve against the current URL
                    raise Redirected(str(response.url.join(URL(location))))

                if response.status != 200:
                    raise DownloadStatusError(response.status, url)

                bytes_written = 0
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                        await f.write(chunk)
                        bytes_written += len(chunk)

            await asyncio.to_thread(os.replace, temp_path, destination)
            committed = True
            log.debug(f"Committed '{destination.name}' ({bytes_written} bytes)")
            return bytes_written
        finally:
            if not committed:
                self._discard(temp_path)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"Could not remove partial file '{path.name}': {e}")
