"""Greedy latency-ordered pairing of queued players."""

from __future__ import annotations

from typing import List, Optional

import structlog

from .confirmation import ConfirmationService
from .errors import Conflict
from .models import Match
from .queue import MatchmakingQueue
from .store import MatchStore, NullMatchStore

logger = structlog.get_logger(__name__)


class PairingEngine:
    """Turns the queue into proposed matches, two players at a time.

    Each cycle walks the queue snapshot from the lowest latency upwards and
    pairs neighbours; an odd player out waits for the next cycle.  This is
    nearest-neighbour matching, not a global optimum.

    A proposed match is written to the store before its players leave the
    queue.  If the write fails both players simply stay queued, and if either
    left the queue while the write was in flight the pair is dropped.
    """

    def __init__(
        self,
        queue: MatchmakingQueue,
        confirmation: ConfirmationService,
        store: Optional[MatchStore] = None,
    ) -> None:
        self.queue = queue
        self.confirmation = confirmation
        self.store: MatchStore = store or NullMatchStore()
        self.cycles = 0

    async def run_cycle(self) -> List[Match]:
        self.cycles += 1
        ordered = iter(self.queue.snapshot())
        proposed: List[Match] = []
        for first in ordered:
            second = next(ordered, None)
            if second is None:
                break
            match = self.confirmation.build_match(first, second)
            try:
                await self.store.save_match(match)
            except Exception:
                logger.exception(
                    "could not persist proposed match, players stay queued",
                    players=[first.player_id, second.player_id],
                )
                continue
            if self.queue.get(first.player_id) is not first or self.queue.get(second.player_id) is not second:
                logger.info("pair dropped, a player left the queue", match_id=match.match_id)
                await self._forget(match)
                continue
            try:
                self.confirmation.open(match)
            except Conflict:
                logger.exception("could not open proposed match, players stay queued", match_id=match.match_id)
                await self._forget(match)
                continue
            self.queue.remove_if_current(first)
            self.queue.remove_if_current(second)
            proposed.append(match)
            await self._delete_entries(match)
        if proposed:
            logger.debug("pairing cycle finished", cycle=self.cycles, proposed=len(proposed), waiting=len(self.queue))
        return proposed

    async def _delete_entries(self, match: Match) -> None:
        for player_id in match.players:
            try:
                await self.store.delete_queue_entry(player_id)
            except Exception:
                logger.warning("could not delete paired queue entry", player_id=player_id, exc_info=True)

    async def _forget(self, match: Match) -> None:
        try:
            await self.store.delete_match(match.match_id)
        except Exception:
            logger.exception("could not delete abandoned match", match_id=match.match_id)


__all__ = ["PairingEngine"]
