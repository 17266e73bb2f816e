"""
End-to-end tests of the HTTP routes and the WebSocket feed.

Each test runs the real queue, scheduler and cache against an in-process media
server; only the backend is faked.
"""

import asyncio
from contextlib import asynccontextmanager

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer
from conftest import AUDIO_BYTES, FakeBackend, MediaServer, make_song

from partyplay.backends.registry import BackendRegistry
from partyplay.core.ranked_queue import RankedQueue
from partyplay.core.scheduler import PlaybackScheduler, PlaybackState
from partyplay.media.downloader import Downloader
from partyplay.storage.cache import CachePipeline
from partyplay.web.app import create_app

SONG = {"id": "x", "title": "Song x", "artist": "Artist", "duration": 180000}


async def fixed_probe(path):
    return 60.0


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@asynccontextmanager
async def party(cache_dir, loggers, backends=("fake",)):
    """
    Yields (client, scheduler, media) for a fully wired app.

    Backends given by name serve songs x, y and z from the media server.
    """
    media = MediaServer()
    async with TestServer(media.app) as media_server, aiohttp.ClientSession() as session:
        urls = {i: str(media_server.make_url(f"/files/{i}")) for i in "xyz"}
        registry = BackendRegistry()
        for backend in backends:
            if isinstance(backend, str):
                backend = FakeBackend(backend, urls=urls)
            registry.register(backend)
        cache = CachePipeline(
            cache_dir,
            registry,
            downloader=Downloader(session=session),
            retry_delay=0,
            event_log=loggers[1],
        )
        scheduler = PlaybackScheduler(
            RankedQueue(), cache, probe=fixed_probe, event_log=loggers[2]
        )
        app = create_app(scheduler, registry, cache)

        async with TestClient(TestServer(app)) as client:
            try:
                yield client, scheduler, media
            finally:
                await scheduler.shutdown()
                await cache.close()


async def enqueue(client, song=SONG, user="u1", **extra):
    return await client.post("/queue", json={"song": song, "userID": user, **extra})


class TestQueueRoutes:
    """GET/POST/DELETE /queue."""

    @pytest.mark.asyncio
    async def test_empty_queue(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            resp = await client.get("/queue")
            assert resp.status == 200
            assert await resp.json() == []

    @pytest.mark.asyncio
    async def test_enqueue_then_list(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            resp = await enqueue(client)
            assert resp.status == 200
            assert await resp.text() == "success"

            await enqueue(client, {**SONG, "id": "y", "title": "Song y"}, user="u2")
            songs = await (await client.get("/queue")).json()

            assert [s["id"] for s in songs] == ["x", "y"]
            assert songs[0]["upVotes"] == ["u1"]
            assert songs[1]["oldness"] == 0

    @pytest.mark.asyncio
    async def test_enqueue_duplicate_counts_as_vote(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            await enqueue(client, user="u2")
            songs = await (await client.get("/queue")).json()
            assert len(songs) == 1
            assert songs[0]["upVotes"] == ["u1", "u2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"song": SONG},
            {"userID": "u1"},
            {"song": {"id": "x"}, "userID": "u1"},
            {"song": SONG, "userID": "u1", "backend": "nope"},
        ],
    )
    async def test_invalid_enqueue_is_404_and_changes_nothing(self, cache_dir, loggers, body):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            resp = await client.post("/queue", json=body)
            assert resp.status == 404
            assert scheduler.queue.now_playing is None
            assert len(scheduler.queue) == 0

    @pytest.mark.asyncio
    async def test_malformed_json_is_404(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            resp = await client.post(
                "/queue", data=b"{not json", headers={"Content-Type": "application/json"}
            )
            assert resp.status == 404

    @pytest.mark.asyncio
    async def test_backend_required_when_ambiguous(self, cache_dir, loggers):
        backends = ["one", "two"]
        async with party(cache_dir, loggers, backends) as (client, scheduler, _):
            assert (await enqueue(client)).status == 404
            assert (await enqueue(client, backend="two")).status == 200
            assert scheduler.queue.now_playing.backend == "two"

    @pytest.mark.asyncio
    async def test_song_service_selects_backend(self, cache_dir, loggers):
        backends = ["one", "two"]
        async with party(cache_dir, loggers, backends) as (client, scheduler, _):
            resp = await enqueue(client, {**SONG, "service": "one"})
            assert resp.status == 200
            assert scheduler.queue.now_playing.backend == "one"

    @pytest.mark.asyncio
    async def test_delete(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            await enqueue(client, {**SONG, "id": "y"})

            resp = await client.delete("/queue/y")

            assert resp.status == 200
            assert "y" not in scheduler.queue
            assert (await client.delete("/queue/ghost")).status == 404


class TestVoteRoute:
    """POST /vote/{id}."""

    @pytest.mark.asyncio
    async def test_vote_reorders_queue(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            for song_id in "xyz":
                await enqueue(client, {**SONG, "id": song_id})

            resp = await client.post("/vote/z", json={"userID": "u2", "vote": 1})

            assert resp.status == 200
            songs = await (await client.get("/queue")).json()
            assert [s["id"] for s in songs] == ["x", "z", "y"]

    @pytest.mark.asyncio
    async def test_unknown_song_is_404(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            resp = await client.post("/vote/ghost", json={"userID": "u1", "vote": 1})
            assert resp.status == 404

    @pytest.mark.asyncio
    async def test_missing_fields_is_404(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            resp = await client.post("/vote/x", json={"vote": -1})
            assert resp.status == 404
            assert scheduler.queue.find("x").down_votes == set()


class TestPlaybackRoutes:
    """Playback control, static songs and stats."""

    @pytest.mark.asyncio
    async def test_skip(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            await enqueue(client, {**SONG, "id": "y"})
            await wait_until(lambda: scheduler.state is PlaybackState.PLAYING)

            resp = await client.post("/playctl", json={"action": "skip"})

            assert resp.status == 200
            assert scheduler.queue.now_playing.id == "y"

    @pytest.mark.asyncio
    async def test_unknown_action_is_404(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            resp = await client.post("/playctl", json={"action": "rewind"})
            assert resp.status == 404

    @pytest.mark.asyncio
    async def test_cached_song_is_served(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            await wait_until(lambda: scheduler.state is PlaybackState.PLAYING)

            resp = await client.get("/song/fake/x.mp3")

            assert resp.status == 200
            assert await resp.read() == AUDIO_BYTES

    @pytest.mark.asyncio
    async def test_partial_downloads_are_not_served(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            partial = cache_dir / "fake" / "y.mp3.part"
            partial.parent.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(AUDIO_BYTES[:10])

            assert (await client.get("/song/fake/y.mp3.part")).status == 404
            assert (await client.get("/song/fake/y.mp3")).status == 404
            assert (await client.get("/song/nope/y.mp3")).status == 404

    @pytest.mark.asyncio
    async def test_stats(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            await wait_until(lambda: scheduler.state is PlaybackState.PLAYING)

            stats = await (await client.get("/stats")).json()

            assert stats["state"] == "playing"
            assert stats["cache"]["downloads"] == 1
            assert stats["backends"] == ["fake"]


class TestSearchRoute:
    """GET /search/{terms}."""

    @pytest.mark.asyncio
    async def test_results_from_every_backend(self, cache_dir, loggers):
        backends = [
            FakeBackend("one", songs=[make_song("1", "Hello", backend="one")]),
            FakeBackend("broken", search_error="offline"),
        ]
        async with party(cache_dir, loggers, backends) as (client, _, _):
            resp = await client.get("/search/hello")
            assert resp.status == 200
            results = await resp.json()

        assert [(s["id"], s["service"]) for s in results] == [("1", "one")]


class TestWebSocket:
    """Live updates and replay on connect."""

    @pytest.mark.asyncio
    async def test_replays_queue_on_connect(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            async with client.ws_connect("/ws") as ws:
                message = await ws.receive_json(timeout=2)
                assert message == {"event": "queue", "data": [None, []]}

    @pytest.mark.asyncio
    async def test_replays_playback_with_position(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, scheduler, _):
            await enqueue(client)
            await wait_until(lambda: scheduler.state is PlaybackState.PLAYING)

            async with client.ws_connect("/ws") as ws:
                playback = await ws.receive_json(timeout=2)
                queue = await ws.receive_json(timeout=2)

        assert playback["event"] == "playback"
        assert playback["data"]["songID"] == "x"
        assert playback["data"]["duration"] == 60000
        assert playback["data"]["position"] >= 0
        assert queue["event"] == "queue"
        assert queue["data"][0]["id"] == "x"

    @pytest.mark.asyncio
    async def test_receives_live_events(self, cache_dir, loggers):
        async with party(cache_dir, loggers) as (client, _, _):
            async with client.ws_connect("/ws") as ws:
                await ws.receive_json(timeout=2)
                await enqueue(client)

                events = []
                while "playback" not in events:
                    message = await ws.receive_json(timeout=2)
                    events.append(message["event"])

        assert events[0] == "queue"
        assert events[-1] == "playback"
