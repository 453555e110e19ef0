"""Server facade tying sessions, queue, pairing, confirmation and games together."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import structlog

from .actions import Action, parse_action
from .confirmation import ConfirmationService
from .config import ServerConfig
from .engine import Event, GameSessionEngine
from .errors import Conflict, NotFound
from .models import (
    GameSession,
    GameState,
    Match,
    MatchStatus,
    Notification,
    PlayerSession,
    QueueEntry,
    QueueStatus,
)
from .notifier import Notifier
from .pairing import PairingEngine
from .queue import MatchmakingQueue
from .sessions import SessionStore
from .store import MatchStore, NullMatchStore
from .tasks import BackgroundTasks

logger = structlog.get_logger(__name__)


@dataclass
class QueueStatusReport:
    """Answer to a queue status poll."""

    player_id: str
    status: QueueStatus
    position: Optional[int] = None
    entry: Optional[QueueEntry] = None
    match: Optional[Match] = None

    def serialise(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "status": self.status.value,
            "position": self.position,
            "entry": self.entry.serialise() if self.entry else None,
            "match": self.match.serialise() if self.match else None,
        }


@dataclass
class SweepReport:
    disconnected: List[str] = field(default_factory=list)
    expired: List[str] = field(default_factory=list)
    games_closed: List[str] = field(default_factory=list)
    matches_forgotten: List[str] = field(default_factory=list)


class GameServer:
    """One isolated matchmaking server instance.

    Nothing is global: construct as many as needed, call ``start`` to run the
    pairing cycle and cleanup sweep in the background and ``stop`` to tear
    them down.  Tests usually drive ``run_pairing_cycle`` and ``sweep``
    directly instead.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        store: Optional[MatchStore] = None,
        clock: Callable[[], float] = time.time,
        seed: Optional[int] = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.store: MatchStore = store or NullMatchStore()
        self._clock = clock
        self.sessions = SessionStore(count_reconnects=self.config.count_reconnects, clock=clock)
        self.queue = MatchmakingQueue(clock=clock)
        self.notifier = Notifier(clock=clock)
        self.engine = GameSessionEngine(self.config, seed=seed, clock=clock)
        self.confirmation = ConfirmationService(
            self.config,
            queue=self.queue,
            sessions=self.sessions,
            engine=self.engine,
            notifier=self.notifier,
            store=self.store,
            clock=clock,
        )
        self.pairing = PairingEngine(self.queue, self.confirmation, store=self.store)
        self._background = BackgroundTasks()
        self._loops: List[asyncio.Task[None]] = []

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._loops:
            return
        self._loops = [
            asyncio.create_task(self._run_every(self.config.pairing_interval, self.run_pairing_cycle), name="pairing"),
            asyncio.create_task(self._run_every(self.config.sweep_interval, self.sweep), name="sweep"),
        ]
        logger.info("server started", pairing_interval=self.config.pairing_interval, sweep_interval=self.config.sweep_interval)

    async def stop(self) -> None:
        loops, self._loops = self._loops, []
        for task in loops:
            task.cancel()
        for task in loops:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.confirmation.shutdown()
        await self._background.drain()
        logger.info("server stopped")

    @property
    def running(self) -> bool:
        return bool(self._loops)

    async def _run_every(self, interval: float, step: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                result = step()
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("background step failed", step=getattr(step, "__name__", repr(step)))

    async def run_pairing_cycle(self) -> List[Match]:
        return await self.pairing.run_cycle()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    async def connect(self, player_id: str, client_info: Optional[Dict[str, object]] = None) -> PlayerSession:
        return self.sessions.connect(player_id, client_info)

    async def heartbeat(self, player_id: str) -> PlayerSession:
        return self.sessions.heartbeat(player_id)

    async def disconnect(self, player_id: str) -> bool:
        """Drop the player from everything they belong to; False if unknown."""

        if self.sessions.remove(player_id) is None:
            return False
        if player_id in self.queue:
            self._background.spawn(self.store.delete_queue_entry(player_id), name=f"store-dequeue-{player_id}")
        self.queue.forget(player_id)
        await self.confirmation.release_player(player_id)
        game = self.engine.session_for(player_id)
        if game is not None and self.engine.remove_player(game.match_id, player_id):
            self.confirmation.retire(game.match_id)
        self.notifier.discard(player_id)
        return True

    def _require_session(self, player_id: str) -> PlayerSession:
        session = self.sessions.get(player_id)
        if session is None:
            raise NotFound(f"no session for player {player_id!r}")
        session.touch(self._clock())
        return session

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------
    async def join_queue(self, player_id: str, player_data: Optional[Dict[str, object]] = None) -> QueueEntry:
        self._require_session(player_id)
        active = self.confirmation.active_match_for(player_id)
        if active is not None:
            raise Conflict(f"player {player_id!r} is already in match {active.match_id!r}")
        entry = self.queue.join(player_id, player_data)
        self._background.spawn(self.store.save_queue_entry(entry), name=f"store-queue-{player_id}")
        return entry

    async def leave_queue(self, player_id: str) -> bool:
        entry = self.queue.leave(player_id)
        if entry is None:
            return False
        self._background.spawn(self.store.delete_queue_entry(player_id), name=f"store-dequeue-{player_id}")
        return True

    def queue_status(self, player_id: str) -> QueueStatusReport:
        session = self.sessions.get(player_id)
        if session is not None:
            session.touch(self._clock())
        match = self.confirmation.active_match_for(player_id)
        if match is not None:
            status = QueueStatus.MATCH_PROPOSED if match.status is MatchStatus.PROPOSED else QueueStatus.IN_GAME
            return QueueStatusReport(player_id=player_id, status=status, match=match)
        entry = self.queue.get(player_id)
        if entry is not None:
            position = next(
                (index for index, queued in enumerate(self.queue.snapshot()) if queued.player_id == player_id),
                None,
            )
            return QueueStatusReport(player_id=player_id, status=QueueStatus.WAITING, position=position, entry=entry)
        if self.queue.is_expired(player_id):
            return QueueStatusReport(player_id=player_id, status=QueueStatus.EXPIRED)
        return QueueStatusReport(player_id=player_id, status=QueueStatus.NOT_QUEUED)

    def poll_notifications(self, player_id: str) -> List[Notification]:
        return self.notifier.drain(player_id)

    # ------------------------------------------------------------------
    # Matches and games
    # ------------------------------------------------------------------
    async def confirm(self, match_id: str, player_id: str, accept: bool) -> Match:
        self._require_session(player_id)
        return await self.confirmation.confirm(match_id, player_id, accept)

    def get_match(self, match_id: str) -> Match:
        return self.confirmation.get(match_id)

    def get_game(self, match_id: str) -> GameSession:
        return self.engine.get(match_id)

    async def submit_action(
        self, match_id: str, player_id: str, action: Union[Action, Mapping[str, object]]
    ) -> Tuple[GameState, List[Event]]:
        self._require_session(player_id)
        if isinstance(action, Mapping):
            action = parse_action(action)
        return self.engine.apply_action(match_id, player_id, action)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    async def sweep(self, now: Optional[float] = None) -> SweepReport:
        """Run one cleanup pass.  A failure on one entity never skips the rest."""

        now = self._clock() if now is None else now
        report = SweepReport()

        for player_id in self.sessions.idle(self.config.player_idle_timeout, now=now):
            try:
                if await self.disconnect(player_id):
                    report.disconnected.append(player_id)
            except Exception:
                logger.exception("failed to disconnect idle player", player_id=player_id)

        for entry in self.queue.evict_stale(self.config.queue_stale_timeout, now=now):
            report.expired.append(entry.player_id)
            self.notifier.notify(entry.player_id, "queue_expired", waited=now - entry.enqueued_at)
            self._background.spawn(
                self.store.delete_queue_entry(entry.player_id), name=f"store-dequeue-{entry.player_id}"
            )

        for match_id in self.engine.idle(self.config.match_idle_timeout, now=now):
            try:
                game = self.engine.destroy(match_id)
                self.confirmation.retire(match_id)
            except Exception:
                logger.exception("failed to close idle game session", match_id=match_id)
                continue
            report.games_closed.append(match_id)
            for player_id in game.participants if game else []:
                self.notifier.notify(player_id, "game_ended", match_id=match_id, reason="idle")

        report.matches_forgotten = self.confirmation.sweep(now=now)
        if report.disconnected or report.expired or report.games_closed:
            logger.info(
                "sweep finished",
                disconnected=len(report.disconnected),
                expired=len(report.expired),
                games_closed=len(report.games_closed),
            )
        return report

    def stats(self) -> Dict[str, object]:
        return {
            "connected_players": self.sessions.connected_count,
            "sessions": len(self.sessions),
            "queued": len(self.queue),
            "matches": len(self.confirmation),
            "games": len(self.engine),
            "running": self.running,
        }


__all__ = ["GameServer", "QueueStatusReport", "SweepReport"]
