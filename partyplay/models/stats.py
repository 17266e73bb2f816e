"""
Dataclass for tracking media cache statistics.
"""

import asyncio
from dataclasses import dataclass, field, fields


@dataclass
class CacheStats:
    """Tracks statistics for the media cache over the lifetime of the server."""

    hits: int = 0
    misses: int = 0
    downloads: int = 0
    failures: int = 0
    redirects: int = 0
    retries: int = 0
    bytes_downloaded: int = 0
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def record_download(self, size_bytes: int) -> None:
        async with self._lock:
            self.downloads += 1
            self.bytes_downloaded += size_bytes

    def as_dict(self) -> dict[str, int]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if not f.name.startswith("_")
        }
