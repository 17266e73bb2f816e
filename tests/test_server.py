"""
Tests for the PartyServer lifecycle.
"""

import aiohttp
import pytest
from aiohttp.test_utils import unused_port

from partyplay.models.config import PartyConfig
from partyplay.web.server import PartyServer


def make_config(tmp_path, **overrides):
    return PartyConfig(
        host="127.0.0.1",
        port=unused_port(),
        cache_dir=str(tmp_path / "song-cache"),
        config_path=str(tmp_path),
        backends=["cat"],
        backend_options={"cat": {"type": "http_catalog", "base_url": "http://127.0.0.1:9/api"}},
        **overrides,
    )


class TestPartyServer:
    """Startup, serving and shutdown."""

    @pytest.mark.asyncio
    async def test_serves_without_reachable_backends(self, tmp_path):
        """An unreachable catalog is dropped at startup; the server still answers."""
        config = make_config(tmp_path)
        server = PartyServer(config)
        stale = tmp_path / "song-cache" / "cat" / "7.mp3.part"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"half")

        await server.start()
        try:
            assert server.registry.names == []
            assert not stale.exists()

            base = f"http://{config.host}:{config.port}"
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{base}/queue") as resp:
                    assert resp.status == 200
                    assert await resp.json() == []
                async with session.get(f"{base}/stats") as resp:
                    stats = await resp.json()
        finally:
            await server.stop()

        assert stats["state"] == "idle"
        assert stats["backends"] == []
        assert server.runner is None

    @pytest.mark.asyncio
    async def test_event_log_written_to_log_dir(self, tmp_path):
        """--log-dir turns on the JSON-lines event log."""
        server = PartyServer(make_config(tmp_path, log_dir=str(tmp_path / "logs")))
        await server.start()
        await server.stop()

        assert list((tmp_path / "logs").glob("partyplay_*.jsonl"))
