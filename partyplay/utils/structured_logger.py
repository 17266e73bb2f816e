"""
Structured event log for cache and playback activity.
Mirrors every event to the standard logger and, optionally, to a JSON-lines file.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.markup import escape


class StructuredLogger:
    """
    Logger that emits both human-readable and machine-parseable entries.

    Usage:
        logger = StructuredLogger("partyplay.events", log_dir=Path("logs"))
        logger.info("playback_started", backend="catalog", song_id="42")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
    ):
        """
        Args:
            name: Name of the standard logger that receives console output.
            log_dir: Directory for JSON log files (None disables the file).
            enable_json: Enable JSON file logging.
        """
        self.name = name
        self.enable_json = enable_json and log_dir is not None
        self._logger = logging.getLogger(name)

        self._json_file = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"partyplay_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        return escape(" ".join(parts))

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }
        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _log(self, level: int, event: str, **context) -> None:
        self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._log(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._log(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._log(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._log(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class CacheLogger:
    """Specialized logger for media cache events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def download_started(self, backend: str, song_id: str):
        self.logger.debug("download_started", backend=backend, song_id=song_id)

    def download_completed(
        self, backend: str, song_id: str, size_bytes: int, duration_s: float
    ):
        self.logger.info(
            "download_completed",
            backend=backend,
            song_id=song_id,
            size_mb=round(size_bytes / (1024 * 1024), 2),
            duration_s=round(duration_s, 2),
        )

    def download_redirected(self, backend: str, song_id: str, hop: int):
        self.logger.debug(
            "download_redirected", backend=backend, song_id=song_id, hop=hop
        )

    def connection_lost(self, backend: str, song_id: str, attempt: int, error: str):
        self.logger.warning(
            "download_connection_lost",
            backend=backend,
            song_id=song_id,
            attempt=attempt,
            error=error,
        )

    def download_failed(self, backend: str, song_id: str, error: str):
        self.logger.error(
            "download_failed", backend=backend, song_id=song_id, error=error
        )


class PlaybackLogger:
    """Specialized logger for scheduler events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def song_promoted(self, song_id: str, title: str, score: int):
        self.logger.info("song_promoted", song_id=song_id, title=title, score=score)

    def playback_started(self, backend: str, song_id: str, duration_s: float):
        self.logger.info(
            "playback_started",
            backend=backend,
            song_id=song_id,
            duration_s=round(duration_s, 2),
        )

    def song_finished(self, song_id: str):
        self.logger.info("song_finished", song_id=song_id)

    def song_skipped(self, song_id: str):
        self.logger.info("song_skipped", song_id=song_id)

    def song_dropped(self, song_id: str, reason: str):
        self.logger.warning("song_dropped", song_id=song_id, reason=reason)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, CacheLogger, PlaybackLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, cache_logger, playback_logger)
    """
    base = StructuredLogger("partyplay.events", log_dir=log_dir, enable_json=enable_json)
    return base, CacheLogger(base), PlaybackLogger(base)
