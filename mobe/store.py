"""Optional write-through of queue and match state.

In-memory state is authoritative for a running instance.  A store only
exists so that other instances could observe who is queued or matched;
``NullMatchStore`` turns the feature off entirely.
"""

from __future__ import annotations

from typing import Dict, Protocol

from .errors import StoreUnavailable
from .models import Match, QueueEntry


class MatchStore(Protocol):
    async def save_match(self, match: Match) -> None: ...

    async def delete_match(self, match_id: str) -> None: ...

    async def save_queue_entry(self, entry: QueueEntry) -> None: ...

    async def delete_queue_entry(self, player_id: str) -> None: ...


class NullMatchStore:
    """Store that accepts and forgets every write."""

    async def save_match(self, match: Match) -> None:
        return None

    async def delete_match(self, match_id: str) -> None:
        return None

    async def save_queue_entry(self, entry: QueueEntry) -> None:
        return None

    async def delete_queue_entry(self, player_id: str) -> None:
        return None


class MemoryMatchStore:
    """Keeps serialised copies in process; ``available`` simulates outages."""

    def __init__(self) -> None:
        self.matches: Dict[str, Dict[str, object]] = {}
        self.queue: Dict[str, Dict[str, object]] = {}
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("match store is unavailable")

    async def save_match(self, match: Match) -> None:
        self._check()
        self.matches[match.match_id] = match.serialise()

    async def delete_match(self, match_id: str) -> None:
        self._check()
        self.matches.pop(match_id, None)

    async def save_queue_entry(self, entry: QueueEntry) -> None:
        self._check()
        self.queue[entry.player_id] = entry.serialise()

    async def delete_queue_entry(self, player_id: str) -> None:
        self._check()
        self.queue.pop(player_id, None)


__all__ = ["MatchStore", "MemoryMatchStore", "NullMatchStore"]
