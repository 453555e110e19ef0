"""Connection records of online players."""

from __future__ import annotations

import time
from typing import Callable, Dict, Iterator, List, Optional

import structlog

from .errors import InvalidArgument, NotFound
from .models import PlayerSession, SessionStatus

logger = structlog.get_logger(__name__)


class SessionStore:
    """In-memory map of player id to ``PlayerSession``.

    The store only knows about sessions.  Evicting a disconnected player from
    the queue, their match and their game is orchestrated by ``GameServer``.
    """

    def __init__(self, count_reconnects: bool = True, clock: Callable[[], float] = time.time) -> None:
        self._sessions: Dict[str, PlayerSession] = {}
        self._count_reconnects = count_reconnects
        self._clock = clock
        self.connected_count = 0

    def connect(self, player_id: str, client_info: Optional[Dict[str, object]] = None) -> PlayerSession:
        if not player_id or not player_id.strip():
            raise InvalidArgument("player id is required")
        now = self._clock()
        reconnect = player_id in self._sessions
        session = PlayerSession(
            player_id=player_id,
            connected_at=now,
            last_activity=now,
            client_info=dict(client_info or {}),
        )
        self._sessions[player_id] = session
        if not reconnect or self._count_reconnects:
            self.connected_count += 1
        logger.info("player connected", player_id=player_id, reconnect=reconnect, connected=self.connected_count)
        return session

    def heartbeat(self, player_id: str) -> PlayerSession:
        session = self._sessions.get(player_id)
        if session is None:
            raise NotFound(f"no session for player {player_id!r}")
        session.touch(self._clock())
        return session

    def remove(self, player_id: str) -> Optional[PlayerSession]:
        session = self._sessions.pop(player_id, None)
        if session is None:
            return None
        session.status = SessionStatus.DISCONNECTED
        self.connected_count = max(0, self.connected_count - 1)
        logger.info("player disconnected", player_id=player_id, connected=self.connected_count)
        return session

    def get(self, player_id: str) -> Optional[PlayerSession]:
        return self._sessions.get(player_id)

    def is_connected(self, player_id: str) -> bool:
        return player_id in self._sessions

    def idle(self, timeout: float, now: Optional[float] = None) -> List[str]:
        """Return ids of sessions whose last activity is older than ``timeout``."""

        now = self._clock() if now is None else now
        return [pid for pid, session in self._sessions.items() if now - session.last_activity > timeout]

    def __contains__(self, player_id: object) -> bool:
        return player_id in self._sessions

    def __iter__(self) -> Iterator[PlayerSession]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["SessionStore"]
