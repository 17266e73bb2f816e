"""
Wires the queue, cache, backends and web interface into a running server.
"""

import asyncio
import logging
import time
from pathlib import Path

from aiohttp import web

from partyplay.backends.registry import BackendRegistry
from partyplay.core.ranked_queue import RankedQueue
from partyplay.core.scheduler import PlaybackScheduler
from partyplay.media.downloader import Downloader, close_connection_pool
from partyplay.models.config import PartyConfig
from partyplay.storage.cache import CachePipeline
from partyplay.utils.formatting import format_duration, format_size
from partyplay.utils.structured_logger import create_structured_logger

from .app import create_app
from .broadcaster import Broadcaster

log = logging.getLogger(__name__)


class PartyServer:
    """Owns every long-lived component of a party session."""

    def __init__(self, config: PartyConfig):
        self.config = config
        log_dir = Path(config.log_dir) if config.log_dir else None
        self.event_log, cache_log, playback_log = create_structured_logger(
            log_dir, enable_json=log_dir is not None
        )

        self.registry = BackendRegistry.from_config(config)
        self.cache = CachePipeline(
            Path(config.cache_dir),
            self.registry,
            downloader=Downloader(config.max_workers),
            retry_delay=config.retry_delay,
            max_redirects=config.max_redirects,
            max_connection_retries=config.max_connection_retries,
            event_log=cache_log,
        )
        self.queue = RankedQueue()
        self.scheduler = PlaybackScheduler(
            self.queue,
            self.cache,
            end_padding=config.end_padding,
            event_log=playback_log,
        )
        self.broadcaster = Broadcaster()
        self.app = create_app(
            self.scheduler,
            self.registry,
            self.cache,
            self.broadcaster,
            search_limit=config.search_result_count,
        )
        self.runner: web.AppRunner | None = None
        self._started_at: float | None = None

    async def start(self) -> None:
        self._started_at = time.monotonic()
        self.cache.cleanup_partials()

        errors = await self.registry.initialize_all()
        if not len(self.registry):
            log.warning(
                "[yellow]⚠️  No backend is available; songs cannot be searched "
                "or played.[/yellow]"
            )
        elif errors:
            log.warning(
                f"[yellow]Running without: {', '.join(sorted(errors))}[/yellow]"
            )

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.config.host, self.config.port)
        await site.start()
        log.info(
            f"[green]✓ Listening on http://{self.config.host}:{self.config.port}[/green]"
        )

    async def stop(self) -> None:
        log.info("Shutting down...")
        await self.scheduler.shutdown()
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        await self.cache.close()
        await self.registry.close_all()
        await close_connection_pool()
        self._log_summary()
        self.event_log.close()

    def _log_summary(self) -> None:
        stats = self.cache.stats
        uptime = time.monotonic() - self._started_at if self._started_at else 0
        log.info(
            f"Party lasted {format_duration(uptime)}: {stats.downloads} songs "
            f"downloaded ({format_size(stats.bytes_downloaded)}), {stats.hits} cache "
            f"hits, {stats.failures} failures."
        )

    async def run_forever(self) -> None:
        """Serves until the surrounding task is cancelled."""
        try:
            await self.start()
            await asyncio.Event().wait()
        finally:
            await self.stop()
