"""
Fan-out of scheduler events to connected WebSocket clients.
"""

import asyncio
import logging
from contextlib import suppress
from typing import Any

from aiohttp import WSCloseCode, WSMsgType, web

log = logging.getLogger(__name__)


class Broadcaster:
    """
    Manages WebSocket clients and pushes ``{"event", "data"}`` messages to them.

    ``publish`` is synchronous so it can be used directly as a scheduler
    listener; every client gets its own queue and writer task, so a slow
    client never blocks the others.
    """

    def __init__(self) -> None:
        self._clients: dict[web.WebSocketResponse, asyncio.Queue] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def publish(self, event: str, data: Any) -> None:
        message = {"event": event, "data": data}
        for queue in self._clients.values():
            queue.put_nowait(message)

    async def serve(self, ws: web.WebSocketResponse, replay: list[dict[str, Any]]) -> None:
        """
        Runs a prepared WebSocket until the client disconnects.

        Args:
            ws: The prepared WebSocket response.
            replay: Messages sent to this client before any live event.
        """
        queue: asyncio.Queue = asyncio.Queue()
        for message in replay:
            queue.put_nowait(message)
        self._clients[ws] = queue
        writer = asyncio.create_task(self._write_loop(ws, queue))
        log.debug(f"WebSocket client connected ({len(self)} total).")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    log.debug(f"WebSocket closed with error: {ws.exception()}")
        finally:
            self._clients.pop(ws, None)
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer
            log.debug(f"WebSocket client disconnected ({len(self)} left).")

    @staticmethod
    async def _write_loop(ws: web.WebSocketResponse, queue: asyncio.Queue) -> None:
        while True:
            message = await queue.get()
            try:
                await ws.send_json(message)
            except (ConnectionResetError, RuntimeError) as e:
                log.debug(f"Dropping WebSocket client: {e}")
                return

    async def close(self) -> None:
        for ws in list(self._clients):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
