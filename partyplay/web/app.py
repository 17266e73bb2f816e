"""
HTTP and WebSocket interface of the party server.
"""

import json
import logging
from typing import Any

from aiohttp import web
from rich.markup import escape

from partyplay.backends.registry import BackendRegistry
from partyplay.core.scheduler import PlaybackScheduler
from partyplay.exceptions import (
    BackendNotFoundError,
    InvalidRequestError,
    SongNotFoundError,
)
from partyplay.models.song import Song
from partyplay.storage.cache import CachePipeline

from .broadcaster import Broadcaster
from .schemas import ENQUEUE_SCHEMA, PLAYCTL_SCHEMA, VOTE_SCHEMA, validate_payload

log = logging.getLogger(__name__)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Maps rejected requests to 404 responses, leaving server state untouched."""
    try:
        return await handler(request)
    except (InvalidRequestError, SongNotFoundError, BackendNotFoundError) as e:
        log.debug(f"Rejected {request.method} {request.path}: {escape(str(e))}")
        raise web.HTTPNotFound(text=str(e)) from e


class PartyRoutes:
    """Request handlers bound to one scheduler, registry and cache."""

    def __init__(
        self,
        scheduler: PlaybackScheduler,
        registry: BackendRegistry,
        cache: CachePipeline,
        broadcaster: Broadcaster,
        search_limit: int = 10,
    ):
        self.scheduler = scheduler
        self.registry = registry
        self.cache = cache
        self.broadcaster = broadcaster
        self.search_limit = search_limit

    def setup(self, app: web.Application) -> None:
        app.router.add_post("/vote/{song_id}", self.handle_vote)
        app.router.add_get("/queue", self.handle_get_queue)
        app.router.add_post("/queue", self.handle_enqueue)
        app.router.add_delete("/queue/{song_id}", self.handle_remove)
        app.router.add_post("/playctl", self.handle_playctl)
        app.router.add_get("/search/{terms}", self.handle_search)
        app.router.add_get("/stats", self.handle_stats)
        app.router.add_get("/ws", self.handle_websocket)
        app.router.add_get("/song/{backend}/{filename:.+}", self.handle_song)

    @staticmethod
    async def _read_json(request: web.Request, schema: dict[str, Any]) -> dict[str, Any]:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidRequestError(f"Request body is not valid JSON: {e}") from e
        return validate_payload(schema, payload)

    async def handle_vote(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request, VOTE_SCHEMA)
        song_id = request.match_info["song_id"]
        await self.scheduler.vote(song_id, payload["userID"], payload["vote"])
        return web.Response(text="success")

    async def handle_get_queue(self, request: web.Request) -> web.Response:
        return web.json_response(self.scheduler.queue.as_list())

    async def handle_enqueue(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request, ENQUEUE_SCHEMA)
        song_data = payload["song"]
        backend = self._resolve_backend(payload.get("backend") or song_data.get("service"))
        song = Song.from_dict(song_data, backend)
        await self.scheduler.enqueue(song, payload["userID"])
        return web.Response(text="success")

    def _resolve_backend(self, requested: str | None) -> str:
        if requested:
            self.registry.get(requested)
            return requested
        if len(self.registry) == 1:
            return self.registry.names[0]
        raise InvalidRequestError(
            "Request must name a backend when more than one is available."
        )

    async def handle_remove(self, request: web.Request) -> web.Response:
        await self.scheduler.remove(request.match_info["song_id"])
        return web.Response(text="success")

    async def handle_playctl(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request, PLAYCTL_SCHEMA)
        if payload["action"] == "skip":
            await self.scheduler.skip()
        return web.Response(text="success")

    async def handle_search(self, request: web.Request) -> web.Response:
        terms = request.match_info["terms"]
        log.info(f"Got search request: '{escape(terms)}'")
        outcome = await self.registry.search(terms, self.search_limit)
        return web.json_response([song.to_dict() for song in outcome.songs])

    async def handle_song(self, request: web.Request) -> web.FileResponse:
        """Serves a complete cached artifact as `/song/<backend>/<song id>.<ext>`."""
        backend_name = request.match_info["backend"]
        filename = request.match_info["filename"]
        song_id, _, extension = filename.rpartition(".")
        backend = self.registry.get(backend_name)
        if not song_id or extension != backend.extension:
            raise SongNotFoundError(f"No cached file '{filename}'.")

        path = self.cache.artifact_path(backend_name, song_id)
        if not path.is_file():
            raise SongNotFoundError(f"Song '{song_id}' is not cached.")
        return web.FileResponse(path)

    async def handle_stats(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "cache": self.cache.stats.as_dict(),
                "state": self.scheduler.state.value,
                "queued": len(self.scheduler.queue),
                "clients": len(self.broadcaster),
                "backends": self.registry.names,
            }
        )

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        replay = []
        if (status := self.scheduler.playback_status()) is not None:
            replay.append({"event": "playback", "data": status})
        replay.append({"event": "queue", "data": self.scheduler.snapshot()})

        await self.broadcaster.serve(ws, replay)
        return ws


def create_app(
    scheduler: PlaybackScheduler,
    registry: BackendRegistry,
    cache: CachePipeline,
    broadcaster: Broadcaster | None = None,
    search_limit: int = 10,
) -> web.Application:
    """
    Builds the aiohttp application and subscribes its broadcaster to the scheduler.
    """
    broadcaster = broadcaster or Broadcaster()
    app = web.Application(middlewares=[error_middleware])
    PartyRoutes(scheduler, registry, cache, broadcaster, search_limit).setup(app)
    scheduler.add_listener(broadcaster.publish)

    async def on_shutdown(_app: web.Application) -> None:
        scheduler.remove_listener(broadcaster.publish)
        await broadcaster.close()

    app.on_shutdown.append(on_shutdown)
    return app
