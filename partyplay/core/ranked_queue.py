"""
The vote-ranked song queue and its now-playing slot.
"""

import itertools
import logging
from collections.abc import Iterator
from typing import Any

from rich.markup import escape

from partyplay.exceptions import SchedulerStateError, SongNotFoundError
from partyplay.models.song import QueueEntry, Song, normalize_vote

log = logging.getLogger(__name__)


class RankedQueue:
    """
    Ordered collection of candidate songs with per-user vote bookkeeping.

    Entries are kept sorted by ``oldness + upvotes - downvotes`` (descending),
    ties going to whichever entry was queued first. A song ID lives in at most
    one place: either the now-playing slot or the waiting queue.
    """

    def __init__(self) -> None:
        self._entries: list[QueueEntry] = []
        self.now_playing: QueueEntry | None = None
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(list(self._entries))

    def __contains__(self, song_id: object) -> bool:
        return self.find(str(song_id)) is not None

    def find(self, song_id: str) -> QueueEntry | None:
        """Looks up a song in the queue first, then in the now-playing slot."""
        for entry in self._entries:
            if entry.id == song_id:
                return entry
        if self.now_playing and self.now_playing.id == song_id:
            return self.now_playing
        return None

    def peek(self) -> QueueEntry | None:
        """Returns the top-ranked waiting entry without removing it."""
        return self._entries[0] if self._entries else None

    def submit_vote(self, target: Song | str, user_id: str, vote: Any) -> QueueEntry:
        """
        Applies a user's vote to a song, queueing the song first if it is new.

        Args:
            target: A Song (queued if unseen) or the ID of an existing entry.
            user_id: The voting user.
            vote: Any integer-like value; only its sign matters.

        Returns:
            The entry the vote was applied to.

        Raises:
            SongNotFoundError: If a bare ID does not match any entry.
            ValueError: If the vote is not integer-like.
        """
        delta = normalize_vote(vote)
        song_id = target.id if isinstance(target, Song) else str(target)
        entry = self.find(song_id)

        if entry is None:
            if not isinstance(target, Song):
                raise SongNotFoundError(f"Song '{song_id}' is not in the queue.")
            entry = QueueEntry(song=target, seq=next(self._seq))
            self._entries.append(entry)
            log.debug(f"Queued new song '{escape(song_id)}'.")

        entry.apply_vote(user_id, delta)
        self.rank()
        return entry

    def rank(self) -> list[QueueEntry]:
        """Re-sorts the waiting entries and returns them in play order."""
        self._entries.sort(key=lambda e: (-e.score, e.seq))
        return list(self._entries)

    def promote_head(self) -> QueueEntry | None:
        """
        Moves the best eligible entry into the now-playing slot.

        Every entry left waiting gains one point of oldness. Entries the crowd
        has voted down are never promoted.

        Raises:
            SchedulerStateError: If a song is already playing.
        """
        if self.now_playing is not None:
            raise SchedulerStateError(
                f"Cannot promote while '{self.now_playing.id}' is playing."
            )

        self.rank()
        head = next((e for e in self._entries if not e.is_downvoted), None)
        if head is None:
            return None

        self._entries.remove(head)
        self.now_playing = head
        for entry in self._entries:
            entry.oldness += 1
        self.rank()
        return head

    def prune_downvoted(self) -> list[QueueEntry]:
        """Removes every waiting entry with more downvotes than upvotes."""
        removed = [e for e in self._entries if e.is_downvoted]
        if removed:
            self._entries = [e for e in self._entries if not e.is_downvoted]
            for entry in removed:
                log.info(
                    f"Song '{escape(entry.song.title or entry.id)}' removed due to "
                    f"downvotes ({len(entry.down_votes)} down / "
                    f"{len(entry.up_votes)} up)."
                )
        return removed

    def remove_by_id(self, song_id: str) -> QueueEntry | None:
        """Removes a waiting entry. The now-playing slot is never touched here."""
        for index, entry in enumerate(self._entries):
            if entry.id == song_id:
                return self._entries.pop(index)
        return None

    def clear_now_playing(self) -> QueueEntry | None:
        entry, self.now_playing = self.now_playing, None
        return entry

    def as_list(self) -> list[dict[str, Any]]:
        """The queue as clients see it: now playing first, then waiting songs."""
        items = [self.now_playing.to_dict()] if self.now_playing else []
        items.extend(entry.to_dict() for entry in self._entries)
        return items

    def snapshot(self) -> list[Any]:
        """The ``[nowPlaying, queue]`` pair broadcast on every state change."""
        return [
            self.now_playing.to_dict() if self.now_playing else None,
            [entry.to_dict() for entry in self._entries],
        ]
