"""
The playback state machine: decides what plays now, when it ends, and what to
prefetch next.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum
from typing import Any

from rich.markup import escape

from partyplay.exceptions import SchedulerStateError, SongNotFoundError
from partyplay.media.probe import probe_duration
from partyplay.models.song import QueueEntry, Song
from partyplay.storage.cache import CachePipeline
from partyplay.utils.structured_logger import PlaybackLogger, create_structured_logger

from .ranked_queue import RankedQueue

log = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class PlaybackState(Enum):
    """States of the playback scheduler."""

    IDLE = "idle"  # Nothing selected for playback
    PRECACHING = "precaching"  # Now-playing chosen, artifact not ready yet
    PLAYING = "playing"  # Artifact ready, song-end timer armed


class PlaybackScheduler:
    """
    Consumes the ranked queue and the media cache to drive playback.

    Every public coroutine runs under a single lock, so votes, downloads
    finishing and timers expiring never interleave mid-decision. Downloads
    and duration probes run outside the lock; their results are re-checked
    against the current now-playing entry before being applied.

    Listeners receive ``("queue", [now_playing, queue])`` on every state change
    and ``("playback", {...})`` whenever a song starts.
    """

    def __init__(
        self,
        queue: RankedQueue,
        cache: CachePipeline,
        end_padding: float = 1.0,
        probe: Callable[[str], Awaitable[float | None]] = probe_duration,
        clock: Callable[[], float] = time.time,
        event_log: PlaybackLogger | None = None,
    ):
        self.queue = queue
        self.cache = cache
        self.end_padding = end_padding
        self._probe = probe
        self._clock = clock
        self.event_log = event_log or create_structured_logger()[2]

        self._lock = asyncio.Lock()
        self._state = PlaybackState.IDLE
        self._duration: float | None = None
        self._end_timer: asyncio.Task | None = None
        self._precache_task: asyncio.Task | None = None
        self._prefetch_tasks: dict[str, asyncio.Task] = {}
        self._listeners: list[Listener] = []

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def timer_armed(self) -> bool:
        return self._end_timer is not None and not self._end_timer.done()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    # Public triggers

    async def enqueue(self, song: Song, user_id: str) -> QueueEntry:
        """Queues a song (or re-votes it) with an implicit upvote from the submitter."""
        async with self._lock:
            entry = self.queue.submit_vote(song, user_id, +1)
            log.info(f"Added song to queue: '{escape(entry.song.title or entry.id)}'")
            self._reevaluate()
            return entry

    async def vote(self, song_id: str, user_id: str, vote: Any) -> QueueEntry:
        """
        Raises:
            SongNotFoundError: If the song is neither queued nor playing.
        """
        async with self._lock:
            entry = self.queue.submit_vote(song_id, user_id, vote)
            log.debug(f"Got vote {vote} for song '{escape(song_id)}'")
            self._reevaluate()
            return entry

    async def remove(self, song_id: str) -> QueueEntry:
        """
        Removes a song; removing the now-playing song skips it.

        Raises:
            SongNotFoundError: If the song is neither queued nor playing.
        """
        async with self._lock:
            current = self.queue.now_playing
            if current is not None and current.id == song_id:
                entry = self._stop_current()
            else:
                entry = self.queue.remove_by_id(song_id)
            if entry is None:
                raise SongNotFoundError(f"Song '{song_id}' is not in the queue.")
            self.event_log.song_dropped(song_id, "removed")
            self._reevaluate()
            return entry

    async def skip(self) -> QueueEntry | None:
        """Stops the current song and advances to the next one."""
        async with self._lock:
            entry = self._stop_current()
            if entry is not None:
                self.event_log.song_skipped(entry.id)
            self._reevaluate()
            return entry

    async def reevaluate(self) -> None:
        async with self._lock:
            self._reevaluate()

    async def shutdown(self) -> None:
        """Cancels the song-end timer and every pending cache task."""
        async with self._lock:
            tasks = list(self._prefetch_tasks.values())
            if self._end_timer is not None:
                tasks.append(self._end_timer)
            self._cancel_timer()
            if self._precache_task is not None:
                tasks.append(self._precache_task)
                self._precache_task = None
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # Views

    def snapshot(self) -> list[Any]:
        return self.queue.snapshot()

    def playback_status(self) -> dict[str, Any] | None:
        """Start metadata of the current song plus its position in milliseconds."""
        entry = self.queue.now_playing
        if entry is None or entry.playback_start is None:
            return None
        duration_ms = (
            int(self._duration * 1000) if self._duration else entry.song.duration
        )
        return {
            "backend": entry.backend,
            "songID": entry.id,
            "playbackStart": int(entry.playback_start * 1000),
            "duration": duration_ms,
            "position": max(0, int((self._clock() - entry.playback_start) * 1000)),
        }

    # Transitions (caller holds the lock)

    def _reevaluate(self) -> None:
        if self.queue.now_playing is None:
            self._state = PlaybackState.IDLE
            self.queue.prune_downvoted()
            entry = self.queue.promote_head()
            if entry is None:
                log.info("End of queue, waiting for more songs.")
            else:
                self.queue.prune_downvoted()
                self.event_log.song_promoted(entry.id, entry.song.title, entry.score)
                self._state = PlaybackState.PRECACHING
                self._precache_task = asyncio.create_task(
                    self._precache(entry), name=f"precache:{entry.id}"
                )
        self._prefetch_next()
        self._publish("queue", self.queue.snapshot())

    def _stop_current(self) -> QueueEntry | None:
        self._cancel_timer()
        if self._precache_task is not None:
            self._precache_task.cancel()
            self._precache_task = None
        entry = self.queue.clear_now_playing()
        self._duration = None
        self._state = PlaybackState.IDLE
        return entry

    def _cancel_timer(self) -> None:
        if self._end_timer is not None:
            self._end_timer.cancel()
            self._end_timer = None

    def _start_playback(self, entry: QueueEntry, duration: float) -> None:
        if self.timer_armed:
            raise SchedulerStateError("A song-end timer is already armed.")

        entry.mark_started(self._clock())
        self._duration = duration
        self._state = PlaybackState.PLAYING
        self._end_timer = asyncio.create_task(
            self._song_end_after(entry, duration + self.end_padding),
            name=f"song-end:{entry.id}",
        )
        log.info(f"[cyan]▶ Playing:[/] {escape(entry.song.title or entry.id)}")
        self.event_log.playback_started(entry.backend, entry.id, duration)
        self._publish("playback", self.playback_status())
        self._publish("queue", self.queue.snapshot())

    def _drop_now_playing(self, entry: QueueEntry, reason: str) -> None:
        self.queue.clear_now_playing()
        self._duration = None
        self._state = PlaybackState.IDLE
        self.event_log.song_dropped(entry.id, reason)

    # Background tasks

    async def _precache(self, entry: QueueEntry) -> None:
        try:
            path = await self.cache.ensure_cached(entry.backend, entry.id)
            duration = await self._probe(str(path))
        except Exception as e:
            async with self._lock:
                if self.queue.now_playing is not entry:
                    return
                log.error(
                    f"[red]✗ Could not cache '{escape(entry.song.title or entry.id)}': "
                    f"{e}[/red]"
                )
                self._precache_task = None
                self._drop_now_playing(entry, str(e))
                self._reevaluate()
            return

        if duration is None:
            duration = entry.song.duration / 1000
            log.warning(
                f"[yellow]Could not probe '{escape(entry.id)}'; using reported "
                f"duration {duration:.0f}s.[/yellow]"
            )

        async with self._lock:
            if self.queue.now_playing is not entry:
                return
            self._precache_task = None
            self._start_playback(entry, duration)

    async def _song_end_after(self, entry: QueueEntry, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self._lock:
            if self.queue.now_playing is not entry:
                return
            self._end_timer = None
            self.queue.clear_now_playing()
            self._duration = None
            self._state = PlaybackState.IDLE
            log.info(f"Finished playing '{escape(entry.song.title or entry.id)}'")
            self.event_log.song_finished(entry.id)
            self._reevaluate()

    def _prefetch_next(self) -> None:
        head = self.queue.peek()
        if head is None or head.is_downvoted or head.id in self._prefetch_tasks:
            return
        if self.cache.is_cached(head.backend, head.id):
            return
        task = asyncio.create_task(self._prefetch(head), name=f"prefetch:{head.id}")
        self._prefetch_tasks[head.id] = task
        task.add_done_callback(lambda _t, song_id=head.id: self._forget_prefetch(song_id))

    def _forget_prefetch(self, song_id: str) -> None:
        self._prefetch_tasks.pop(song_id, None)

    async def _prefetch(self, entry: QueueEntry) -> None:
        try:
            await self.cache.ensure_cached(entry.backend, entry.id)
            log.debug(f"Successfully pre-cached '{escape(entry.id)}'")
        except Exception as e:
            async with self._lock:
                if self.queue.find(entry.id) is not entry:
                    return
                if self.queue.remove_by_id(entry.id) is None:
                    # Promoted meanwhile; the precache path reports the failure.
                    return
                log.warning(
                    f"[yellow]Pre-cache of '{escape(entry.song.title or entry.id)}' "
                    f"failed, removing it from the queue: {e}[/yellow]"
                )
                self.event_log.song_dropped(entry.id, str(e))
                self._reevaluate()

    def _publish(self, event: str, data: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception as e:
                log.warning(f"Listener failed while handling '{event}': {e}")
