"""
Probes cached audio artifacts for their playable duration.
"""

import asyncio
import logging

import mutagen
from mutagen import MutagenError

log = logging.getLogger(__name__)


def probe_duration_sync(filepath: str) -> float | None:
    """
    Reads the playable length of an audio file with mutagen.

    Args:
        filepath: Path to the audio file.

    Returns:
        The duration in seconds, or None if the file is not recognized or has
        no usable stream info.
    """
    try:
        audio = mutagen.File(filepath)
    except MutagenError as e:
        log.warning(f"Could not probe '{filepath}': {e}")
        return None
    except OSError as e:
        log.warning(f"Could not open '{filepath}' for probing: {e}")
        return None

    if audio is None or audio.info is None:
        log.debug(f"'{filepath}' is not a recognized audio file.")
        return None

    length = getattr(audio.info, "length", 0) or 0
    if length <= 0:
        log.debug(f"'{filepath}' reports no stream length.")
        return None
    return float(length)


async def probe_duration(filepath: str) -> float | None:
    """Async wrapper running the probe off the event loop."""
    return await asyncio.to_thread(probe_duration_sync, filepath)
