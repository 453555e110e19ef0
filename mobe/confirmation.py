"""Match confirmation handshake.

A proposed match waits for both players to accept.  Acceptance by both
confirms it and spawns the game session; a rejection, a disconnect or the
deadline cancels it and sends the remaining connected players back to the
queue.  Every transition of a match runs under that match's lock, which is
what keeps game session creation to exactly once when both players confirm
at the same moment.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from .config import ServerConfig
from .engine import GameSessionEngine
from .errors import AlreadyQueued, Conflict, NotFound
from .models import CancelReason, ConfirmationStatus, Match, MatchStatus, QueueEntry
from .notifier import Notifier
from .queue import MatchmakingQueue
from .sessions import SessionStore
from .store import MatchStore, NullMatchStore
from .tasks import BackgroundTasks

logger = structlog.get_logger(__name__)


class ConfirmationService:
    """Owns the match table and drives each match through its handshake."""

    def __init__(
        self,
        config: ServerConfig,
        queue: MatchmakingQueue,
        sessions: SessionStore,
        engine: GameSessionEngine,
        notifier: Notifier,
        store: Optional[MatchStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.queue = queue
        self.sessions = sessions
        self.engine = engine
        self.notifier = notifier
        self.store: MatchStore = store or NullMatchStore()
        self._clock = clock
        self._matches: Dict[str, Match] = {}
        self._active_by_player: Dict[str, str] = {}
        self._retired_at: Dict[str, float] = {}
        self._timers: Dict[str, asyncio.Task[None]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._background = BackgroundTasks()

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------
    def build_match(self, first: QueueEntry, second: QueueEntry) -> Match:
        """Create an unregistered match record for two queue entries."""

        now = self._clock()
        return Match(
            match_id=uuid.uuid4().hex,
            players=(first.player_id, second.player_id),
            created_at=now,
            deadline=now + self.config.confirmation_timeout,
            player_data={
                first.player_id: dict(first.player_data),
                second.player_id: dict(second.player_data),
            },
        )

    def open(self, match: Match) -> Match:
        """Register ``match`` as proposed, arm its deadline and notify both players."""

        for player_id in match.players:
            if player_id in self._active_by_player:
                raise Conflict(f"player {player_id!r} already has an active match")
        self._matches[match.match_id] = match
        self._locks[match.match_id] = asyncio.Lock()
        for player_id in match.players:
            self._active_by_player[player_id] = match.match_id
        self._timers[match.match_id] = asyncio.create_task(
            self._expire_after(match.match_id, max(0.0, match.deadline - self._clock())),
            name=f"confirmation-deadline-{match.match_id}",
        )
        for player_id in match.players:
            opponent = match.opponent_of(player_id)
            self.notifier.notify(
                player_id,
                "match_proposed",
                match_id=match.match_id,
                opponent_id=opponent,
                opponent=dict(match.player_data.get(opponent, {})),
                deadline=match.deadline,
            )
        logger.info("match proposed", match_id=match.match_id, players=list(match.players))
        return match

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def confirm(self, match_id: str, player_id: str, accept: bool) -> Match:
        match = self.get(match_id)
        if player_id not in match.players:
            raise NotFound(f"player {player_id!r} is not part of match {match_id!r}")
        async with self._locks[match_id]:
            if match.is_terminal:
                return match
            if accept:
                match.confirmations[player_id] = ConfirmationStatus.READY
                logger.info("player accepted match", match_id=match_id, player_id=player_id)
                if match.all_ready():
                    self._confirm(match)
            else:
                logger.info("player rejected match", match_id=match_id, player_id=player_id)
                self._cancel(match, CancelReason.REJECTED_BY_PLAYER, requeue=[match.opponent_of(player_id)])
        return match

    async def release_player(self, player_id: str) -> Optional[Match]:
        """Detach a disconnecting player from their active match.

        A proposed match is cancelled and the opponent requeued.  For a
        confirmed match only the player's membership is dropped; the game
        session itself is handled by the engine.
        """

        match_id = self._active_by_player.get(player_id)
        if match_id is None:
            return None
        match = self._matches[match_id]
        async with self._locks[match_id]:
            if match.status is MatchStatus.PROPOSED:
                self._cancel(match, CancelReason.PLAYER_DISCONNECTED, requeue=[match.opponent_of(player_id)])
            elif self._active_by_player.get(player_id) == match_id:
                del self._active_by_player[player_id]
        return match

    def retire(self, match_id: str) -> None:
        """Mark a confirmed match as over once its game session is gone."""

        match = self._matches.get(match_id)
        if match is None:
            return
        self._release(match)
        self._retired_at[match_id] = self._clock()
        self._background.spawn(self.store.delete_match(match_id), name=f"store-delete-{match_id}")

    def _confirm(self, match: Match) -> None:
        self.engine.create_session(match.match_id, list(match.players))
        match.status = MatchStatus.CONFIRMED
        match.resolved_at = self._clock()
        self._cancel_timer(match.match_id)
        for player_id in match.players:
            self.notifier.notify(player_id, "match_confirmed", match_id=match.match_id)
        logger.info("match confirmed", match_id=match.match_id)
        self._persist(match)

    def _cancel(self, match: Match, reason: CancelReason, requeue: Iterable[str]) -> None:
        match.status = MatchStatus.CANCELLED
        match.cancel_reason = reason
        match.resolved_at = self._clock()
        self._cancel_timer(match.match_id)
        self._release(match)
        requeued: List[str] = []
        for player_id in requeue:
            if not self.sessions.is_connected(player_id):
                continue
            try:
                entry = self.queue.join(player_id, match.player_data.get(player_id))
            except AlreadyQueued:
                logger.warning("player already back in queue", match_id=match.match_id, player_id=player_id)
                continue
            requeued.append(player_id)
            self._background.spawn(self.store.save_queue_entry(entry), name=f"store-queue-{player_id}")
        for player_id in match.players:
            self.notifier.notify(
                player_id,
                "match_cancelled",
                match_id=match.match_id,
                reason=reason.value,
                requeued=player_id in requeued,
            )
        logger.info("match cancelled", match_id=match.match_id, reason=reason.value, requeued=requeued)
        self._persist(match)

    async def _expire_after(self, match_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        match = self._matches.get(match_id)
        if match is None:
            return
        async with self._locks[match_id]:
            if match.is_terminal:
                return
            logger.info("confirmation deadline passed", match_id=match_id)
            try:
                self._cancel(match, CancelReason.CONFIRMATION_TIMEOUT, requeue=match.players)
            except Exception:
                logger.exception("failed to expire match", match_id=match_id)

    def _cancel_timer(self, match_id: str) -> None:
        task = self._timers.pop(match_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _release(self, match: Match) -> None:
        for player_id in match.players:
            if self._active_by_player.get(player_id) == match.match_id:
                del self._active_by_player[player_id]

    def _persist(self, match: Match) -> None:
        self._background.spawn(self.store.save_match(match), name=f"store-save-{match.match_id}")

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------
    def get(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise NotFound(f"unknown match {match_id!r}")
        return match

    def active_match_for(self, player_id: str) -> Optional[Match]:
        match_id = self._active_by_player.get(player_id)
        return self._matches.get(match_id) if match_id else None

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Forget terminal matches older than the retention window."""

        now = self._clock() if now is None else now
        retention = self.config.finished_match_retention
        expired: List[str] = []
        for match_id, match in list(self._matches.items()):
            if match.status is MatchStatus.CANCELLED:
                finished_at = match.resolved_at
            else:
                finished_at = self._retired_at.get(match_id)
            if finished_at is None or now - finished_at <= retention:
                continue
            del self._matches[match_id]
            self._locks.pop(match_id, None)
            self._retired_at.pop(match_id, None)
            expired.append(match_id)
        return expired

    async def shutdown(self) -> None:
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        await self._background.drain()

    async def flush(self) -> None:
        """Wait for pending store writes."""

        await self._background.drain()

    def pending_timers(self) -> int:
        return len(self._timers)

    def __len__(self) -> int:
        return len(self._matches)


__all__ = ["ConfirmationService"]
