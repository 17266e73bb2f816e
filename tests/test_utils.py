"""
Tests for formatting helpers, the structured event log and duration probing.
"""

import json

import pytest

from partyplay.media.probe import probe_duration, probe_duration_sync
from partyplay.utils.formatting import (
    display_artist,
    format_duration,
    format_size,
    format_track_length,
)
from partyplay.utils.structured_logger import create_structured_logger


class TestFormatting:
    """Human-readable sizes and durations."""

    @pytest.mark.parametrize(
        "size, expected",
        [(0, "0 B"), (512, "512.0 B"), (1536, "1.5 KB"), (5 * 1024**3, "5.0 GB")],
    )
    def test_format_size(self, size, expected):
        assert format_size(size) == expected

    @pytest.mark.parametrize(
        "seconds, expected",
        [(0, "0s"), (59, "59s"), (3600, "1h"), (3725, "1h 2m 5s")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize(
        "ms, expected", [(0, "0:00"), (187000, "3:07"), (3_600_500, "60:00"), (-5, "0:00")]
    )
    def test_format_track_length(self, ms, expected):
        assert format_track_length(ms) == expected

    def test_display_artist_placeholder(self):
        assert display_artist({"artist": "Band"}) == "Band"
        assert display_artist({"artist": ""}) == "Unknown Artist"
        assert display_artist({}) == "Unknown Artist"


class TestStructuredLogger:
    """JSON-lines event output."""

    def test_events_written_as_json_lines(self, tmp_path):
        """Every event becomes one JSON object carrying the session id."""
        base, cache_log, playback_log = create_structured_logger(tmp_path, enable_json=True)
        try:
            cache_log.download_completed("cat", "42", 2 * 1024 * 1024, 1.234)
            playback_log.song_dropped("42", "gone [404]")
        finally:
            base.close()

        (log_file,) = tmp_path.glob("partyplay_*.jsonl")
        entries = [json.loads(line) for line in log_file.read_text().splitlines()]

        assert [e["event"] for e in entries] == ["download_completed", "song_dropped"]
        assert entries[0]["size_mb"] == 2.0
        assert entries[0]["duration_s"] == 1.23
        assert entries[1]["level"] == "WARNING"
        assert entries[1]["reason"] == "gone [404]"
        assert entries[0]["session_id"] == entries[1]["session_id"]

    def test_no_file_without_log_dir(self, tmp_path):
        """JSON output is disabled when no directory is given."""
        base, _, playback_log = create_structured_logger(None, enable_json=True)
        playback_log.song_finished("42")
        base.close()
        assert not base.enable_json

    def test_writes_after_close_are_ignored(self, tmp_path):
        base, cache_log, _ = create_structured_logger(tmp_path, enable_json=True)
        base.close()
        cache_log.download_started("cat", "1")
        (log_file,) = tmp_path.glob("partyplay_*.jsonl")
        assert log_file.read_text() == ""


class TestProbe:
    """Duration probing of cached files."""

    def test_unrecognized_file(self, tmp_path):
        path = tmp_path / "notes.mp3"
        path.write_text("definitely not audio")
        assert probe_duration_sync(str(path)) is None

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        assert await probe_duration(str(tmp_path / "ghost.mp3")) is None
