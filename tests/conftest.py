"""
Shared fixtures: an in-memory backend, a scriptable media server and a
temporary cache directory.

Nothing here touches the network beyond 127.0.0.1.
"""
import asyncio
from collections import Counter
from pathlib import Path

import pytest
from aiohttp import web

from partyplay.backends.base import Backend
from partyplay.backends.registry import BackendRegistry
from partyplay.exceptions import BackendError
from partyplay.models.song import Song
from partyplay.utils.structured_logger import create_structured_logger

AUDIO_BYTES = b"ID3" + bytes(range(256)) * 64

# Nothing listens here, so connecting fails with a transport error.
UNREACHABLE_URL = "http://127.0.0.1:9/unreachable.mp3"


class FakeBackend(Backend):
    """
    Backend whose stream URLs and search results are set by the test.

    A list of URLs for one song is consumed in order, the last one repeating.
    """

    def __init__(self, name="fake", urls=None, songs=None, search_error=None, init_error=None):
        super().__init__(name, {})
        self.urls = {song_id: (list(u) if isinstance(u, list) else u) for song_id, u in (urls or {}).items()}
        self.songs = list(songs or [])
        self.search_error = search_error
        self.init_error = init_error
        self.init_calls = 0
        self.close_calls = 0
        self.stream_calls = Counter()

    async def init(self):
        self.init_calls += 1
        if self.init_error:
            raise BackendError(self.init_error)

    async def search(self, terms, limit=10):
        if self.search_error:
            raise BackendError(self.search_error)
        matches = [s for s in self.songs if terms.lower() in s.title.lower()]
        return matches[:limit]

    async def stream_url(self, song_id):
        self.stream_calls[song_id] += 1
        target = self.urls.get(song_id)
        if target is None:
            raise BackendError(f"Unknown song '{song_id}'")
        if isinstance(target, list):
            return target.pop(0) if len(target) > 1 else target[0]
        return target

    async def close(self):
        self.close_calls += 1


class MediaServer:
    """
    aiohttp application serving audio for the cache tests.

    Routes:
        /files/{name}     the audio body (optionally after ``delay`` seconds)
        /redirect/{name}  302 to /files/{name}
        /relative/{name}  302 with a relative Location
        /loop             302 to itself
        /bare-redirect    302 without a Location header
        /gone             404
    """

    def __init__(self, delay=0.0):
        self.delay = delay
        self.hits = Counter()
        self.app = web.Application()
        self.app.router.add_get("/files/{name}", self.handle_file)
        self.app.router.add_get("/redirect/{name}", self.handle_redirect)
        self.app.router.add_get("/relative/{name}", self.handle_relative)
        self.app.router.add_get("/loop", self.handle_loop)
        self.app.router.add_get("/bare-redirect", self.handle_bare_redirect)
        self.app.router.add_get("/gone", self.handle_gone)

    async def handle_file(self, request):
        name = request.match_info["name"]
        self.hits[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return web.Response(body=AUDIO_BYTES, content_type="audio/mpeg")

    async def handle_redirect(self, request):
        self.hits["redirect"] += 1
        raise web.HTTPFound(f"/files/{request.match_info['name']}")

    async def handle_relative(self, request):
        raise web.HTTPFound(f"../files/{request.match_info['name']}")

    async def handle_loop(self, request):
        self.hits["loop"] += 1
        raise web.HTTPFound("/loop")

    async def handle_bare_redirect(self, request):
        return web.Response(status=302)

    async def handle_gone(self, request):
        self.hits["gone"] += 1
        return web.Response(status=404, text="gone")


def make_song(song_id, title=None, backend="fake", duration=180000, artist="Artist"):
    return Song(
        id=song_id,
        title=title or f"Song {song_id}",
        backend=backend,
        artist=artist,
        duration=duration,
    )


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def registry(fake_backend):
    registry = BackendRegistry()
    registry.register(fake_backend)
    return registry


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    return tmp_path / "song-cache"


@pytest.fixture
def loggers():
    """Structured loggers with JSON output disabled: (base, cache, playback)."""
    base, cache_log, playback_log = create_structured_logger()
    yield base, cache_log, playback_log
    base.close()
