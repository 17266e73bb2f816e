"""
The media cache: guarantees a complete local artifact exists for a song before
it is played. Owns download deduplication, redirect handling and reconnects.
"""

import asyncio
import hashlib
import logging
import shutil
import time
from pathlib import Path
from urllib.parse import quote

import aiohttp
from pathvalidate import is_valid_filename

from partyplay.backends.registry import BackendRegistry
from partyplay.exceptions import (
    BackendError,
    CacheError,
    RedirectLimitError,
    RetryLimitError,
)
from partyplay.media.downloader import Downloader, Redirected
from partyplay.models.stats import CacheStats
from partyplay.utils.structured_logger import CacheLogger, create_structured_logger

log = logging.getLogger(__name__)

# Failures below the HTTP layer; these trigger a reconnect and a fresh attempt.
TRANSPORT_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
)

# Names longer than this are replaced by a digest.
MAX_NAME_LENGTH = 200


def encode_name(name: str, suffix: str = "") -> str:
    """
    Maps an arbitrary identifier to a distinct, filesystem-safe file name.

    Percent-encoding keeps the mapping one-to-one. Names that are too long or
    reserved on the platform become a SHA-256 digest behind an "@" prefix,
    which percent-encoding never produces.
    """
    encoded = quote(name, safe="") + suffix
    if len(encoded) <= MAX_NAME_LENGTH and is_valid_filename(encoded):
        return encoded
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    return f"@{digest}{suffix}"


class CachePipeline:
    """
    Materializes songs as files under ``<cache_dir>/<backend>/<song id>.<ext>``,
    both names passed through :func:`encode_name`.

    The existence of that file is the only cache-hit signal: downloads stream
    into a ``.part`` file which is renamed into place once complete.
    """

    def __init__(
        self,
        cache_dir: Path,
        registry: BackendRegistry,
        downloader: Downloader | None = None,
        retry_delay: float = 5.0,
        max_redirects: int = 10,
        max_connection_retries: int = 5,
        event_log: CacheLogger | None = None,
    ):
        """
        Args:
            cache_dir: Root directory of the media cache.
            registry: Registry used to reach backends by name.
            downloader: Transfer implementation (a pooled one by default).
            retry_delay: Seconds to wait before retrying after a connection drop.
            max_redirects: Redirect hops tolerated per download.
            max_connection_retries: Reconnect attempts tolerated per download.
            event_log: Structured event sink.
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.registry = registry
        self.downloader = downloader or Downloader()
        self.retry_delay = retry_delay
        self.max_redirects = max_redirects
        self.max_connection_retries = max_connection_retries
        self.event_log = event_log or create_structured_logger()[1]
        self.stats = CacheStats()
        self._inflight: dict[tuple[str, str], asyncio.Task] = {}

    def artifact_path(self, backend_name: str, song_id: str) -> Path:
        """
        Where the artifact for a song lives.

        Raises:
            BackendNotFoundError: If the backend is not registered.
        """
        backend = self.registry.get(backend_name)
        filename = encode_name(song_id, f".{backend.extension}")
        return self.cache_dir / encode_name(backend_name) / filename

    def is_cached(self, backend_name: str, song_id: str) -> bool:
        try:
            return self.artifact_path(backend_name, song_id).is_file()
        except BackendError:
            return False

    def is_downloading(self, backend_name: str, song_id: str) -> bool:
        return (backend_name, song_id) in self._inflight

    async def ensure_cached(self, backend_name: str, song_id: str) -> Path:
        """
        Returns the path of a complete artifact, downloading it if needed.

        Concurrent calls for the same song share one transfer and all observe
        its outcome. Cancelling a caller never aborts the shared transfer.

        Raises:
            CacheError: If the song cannot be cached.
        """
        try:
            destination = self.artifact_path(backend_name, song_id)
        except BackendError as e:
            raise CacheError(str(e)) from e

        key = (backend_name, song_id)
        task = self._inflight.get(key)
        if task is None:
            if destination.is_file():
                self.stats.hits += 1
                return destination

            self.stats.misses += 1
            task = asyncio.create_task(
                self._download(backend_name, song_id, destination),
                name=f"cache:{backend_name}:{song_id}",
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            log.debug(f"Joining in-flight download of '{song_id}'.")

        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, str], task: asyncio.Task) -> None:
        self._inflight.pop(key, None)
        # Mark the outcome as retrieved even if every waiter has gone away.
        if not task.cancelled():
            task.exception()

    async def _download(self, backend_name: str, song_id: str, destination: Path) -> Path:
        """Runs the redirect / reconnect loop for a single song."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        self.event_log.download_started(backend_name, song_id)
        start_time = time.monotonic()

        url: str | None = None
        redirects = 0
        reconnects = 0
        try:
            while True:
                try:
                    if url is None:
                        url = await self.registry.get(backend_name).stream_url(song_id)
                    size = await self.downloader.download_file(url, destination)
                except Redirected as redirect:
                    redirects += 1
                    self.stats.redirects += 1
                    if redirects > self.max_redirects:
                        raise RedirectLimitError(
                            f"'{song_id}' redirected more than "
                            f"{self.max_redirects} times."
                        ) from None
                    self.event_log.download_redirected(backend_name, song_id, redirects)
                    log.debug(f"Redirected. Restarting '{song_id}' at the new URL.")
                    url = redirect.location
                    continue
                except TRANSPORT_ERRORS as e:
                    reconnects += 1
                    self.stats.retries += 1
                    if reconnects > self.max_connection_retries:
                        raise RetryLimitError(
                            f"Gave up on '{song_id}' after "
                            f"{self.max_connection_retries} reconnects: {e}"
                        ) from e
                    self.event_log.connection_lost(
                        backend_name, song_id, reconnects, str(e) or type(e).__name__
                    )
                    log.warning(
                        f"[yellow]Error while fetching '{song_id}' ({e!r}). "
                        f"Reconnecting in {self.retry_delay:g}s...[/yellow]"
                    )
                    await asyncio.sleep(self.retry_delay)
                    await self._reconnect(backend_name)
                    url = None
                    continue
                except BackendError as e:
                    raise CacheError(f"Backend could not provide '{song_id}': {e}") from e
                except CacheError:
                    raise
                except Exception as e:
                    raise CacheError(
                        f"Could not download '{song_id}': {type(e).__name__}: {e}"
                    ) from e

                await self.stats.record_download(size)
                self.event_log.download_completed(
                    backend_name, song_id, size, time.monotonic() - start_time
                )
                return destination
        except CacheError as e:
            self.stats.failures += 1
            self.event_log.download_failed(backend_name, song_id, str(e))
            raise

    async def _reconnect(self, backend_name: str) -> None:
        try:
            await self.registry.reinitialize(backend_name)
        except BackendError as e:
            # The next attempt fails fast and counts toward the ceiling.
            log.warning(f"[yellow]Reconnect of '{backend_name}' failed: {e}[/yellow]")

    def cleanup_partials(self) -> int:
        """Removes ``.part`` files left behind by an interrupted run."""
        removed = 0
        for partial in self.cache_dir.glob("*/*.part"):
            try:
                partial.unlink()
                removed += 1
            except OSError as e:
                log.warning(f"Failed to remove stale partial '{partial.name}': {e}")
        if removed:
            log.debug(f"Cache cleanup: removed {removed} partial downloads.")
        return removed

    def clear(self) -> bool:
        """Removes every cached artifact."""
        log.info("Clearing media cache...")
        try:
            for child in self.cache_dir.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False

    async def close(self) -> None:
        """Cancels downloads still in flight."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
