"""Matchmaking queue."""

from __future__ import annotations

import heapq
import itertools
import time
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import structlog

from .errors import AlreadyQueued, InvalidArgument
from .models import QueueEntry

logger = structlog.get_logger(__name__)


class QueueSnapshot:
    """Ordered view over the entries present when the snapshot was taken.

    Iteration is lazy (entries are popped off a private heap as they are
    consumed) and restartable: every ``iter()`` starts from the lowest
    latency entry again.
    """

    def __init__(self, entries: Iterable[QueueEntry]) -> None:
        self._entries = list(entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        heap = list(self._entries)
        heapq.heapify(heap)
        while heap:
            yield heapq.heappop(heap)

    def __len__(self) -> int:
        return len(self._entries)


class MatchmakingQueue:
    """Waiting players keyed by player id.

    Ordering is by latency metric, then enqueue time, then arrival ticket, so
    two joins within the same clock tick still pair in arrival order.
    Players evicted for staleness are remembered until they rejoin, leave or
    are forgotten so that a status poll can report ``expired``.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: Dict[str, QueueEntry] = {}
        self._expired: Dict[str, QueueEntry] = {}
        self._ticket_counter = itertools.count()
        self._clock = clock

    def join(self, player_id: str, player_data: Optional[Dict[str, object]] = None) -> QueueEntry:
        if not player_id:
            raise InvalidArgument("player id is required")
        if player_id in self._entries:
            raise AlreadyQueued(f"player {player_id!r} is already queued")
        try:
            entry = QueueEntry(
                player_id=player_id,
                player_data=dict(player_data or {}),
                enqueued_at=self._clock(),
                ticket=next(self._ticket_counter),
            )
        except (TypeError, ValueError) as exc:
            raise InvalidArgument(f"invalid latency for player {player_id!r}: {exc}") from exc
        self._entries[player_id] = entry
        self._expired.pop(player_id, None)
        logger.debug("player queued", player_id=player_id, latency=entry.latency, queued=len(self._entries))
        return entry

    def leave(self, player_id: str) -> Optional[QueueEntry]:
        self._expired.pop(player_id, None)
        return self._entries.pop(player_id, None)

    def remove_if_current(self, entry: QueueEntry) -> bool:
        """Remove ``entry`` only if it is still the player's live entry."""

        if self._entries.get(entry.player_id) is not entry:
            return False
        del self._entries[entry.player_id]
        return True

    def forget(self, player_id: str) -> None:
        self._entries.pop(player_id, None)
        self._expired.pop(player_id, None)

    def get(self, player_id: str) -> Optional[QueueEntry]:
        return self._entries.get(player_id)

    def is_expired(self, player_id: str) -> bool:
        return player_id in self._expired

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(self._entries.values())

    def evict_stale(self, timeout: float, now: Optional[float] = None) -> List[QueueEntry]:
        """Drop entries waiting longer than ``timeout`` and return them."""

        now = self._clock() if now is None else now
        stale = [entry for entry in self._entries.values() if now - entry.enqueued_at > timeout]
        for entry in stale:
            del self._entries[entry.player_id]
            self._expired[entry.player_id] = entry
        if stale:
            logger.info("queue entries expired", players=[entry.player_id for entry in stale])
        return stale

    def __contains__(self, player_id: object) -> bool:
        return player_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["MatchmakingQueue", "QueueSnapshot"]
