"""
Core data structures for songs and their crowd-voting state in the queue.
"""

import time
from dataclasses import dataclass, field
from typing import Any


def normalize_vote(vote: Any) -> int:
    """
    Collapses any integer-like vote into -1, 0 or +1.

    Raises:
        ValueError: If the vote cannot be interpreted as an integer.
    """
    if isinstance(vote, bool):
        raise ValueError("Vote must be an integer, not a boolean.")
    value = int(vote)
    return (value > 0) - (value < 0)


@dataclass(frozen=True)
class Song:
    """Immutable identity of a playable track as reported by a backend."""

    id: str
    title: str
    backend: str
    artist: str = ""
    album: str = ""
    duration: int = 0  # milliseconds
    metadata: dict[str, Any] = field(
        default_factory=dict, compare=False, hash=False, repr=False
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any], backend: str) -> "Song":
        """Builds a Song from a loosely-typed JSON object."""
        known = {"id", "title", "artist", "album", "duration", "service", "backend"}
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            backend=backend,
            artist=str(data.get("artist") or ""),
            album=str(data.get("album") or ""),
            duration=int(data.get("duration") or 0),
            metadata={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializes the song the way search results are reported to clients."""
        return {
            "artist": self.artist,
            "title": self.title,
            "album": self.album,
            "duration": self.duration,
            "id": self.id,
            "service": self.backend,
        }


@dataclass
class QueueEntry:
    """A song waiting in (or promoted from) the queue, with its crowd state."""

    song: Song
    seq: int
    up_votes: set[str] = field(default_factory=set)
    down_votes: set[str] = field(default_factory=set)
    oldness: int = 0
    playback_start: float | None = None

    @property
    def id(self) -> str:
        return self.song.id

    @property
    def backend(self) -> str:
        return self.song.backend

    @property
    def score(self) -> int:
        """Ranking score: waiting credit plus net votes."""
        return self.oldness + len(self.up_votes) - len(self.down_votes)

    @property
    def is_downvoted(self) -> bool:
        """True when the crowd has rejected this song."""
        return len(self.down_votes) > len(self.up_votes)

    def apply_vote(self, user_id: str, vote: int) -> None:
        """
        Records a normalized vote, keeping the up/down sets disjoint for the user.
        """
        self.up_votes.discard(user_id)
        self.down_votes.discard(user_id)
        if vote > 0:
            self.up_votes.add(user_id)
        elif vote < 0:
            self.down_votes.add(user_id)

    def mark_started(self, now: float | None = None) -> None:
        self.playback_start = time.time() if now is None else now

    def to_dict(self) -> dict[str, Any]:
        return {
            "artist": self.song.artist,
            "title": self.song.title,
            "duration": self.song.duration,
            "id": self.song.id,
            "upVotes": sorted(self.up_votes),
            "downVotes": sorted(self.down_votes),
            "oldness": self.oldness,
        }
