"""Data models for the matchmaking server.

Every record exchanged with the HTTP layer carries a ``serialise`` method so
the transport never reaches into the internals.  Game state objects are
frozen: a new ``GameState`` is built for every applied action and swapped in
as a whole, so readers never observe a half-applied update.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

Vector2 = Tuple[float, float]


class SessionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(slots=True)
class PlayerSession:
    """Connection record of a single player."""

    player_id: str
    connected_at: float
    last_activity: float
    client_info: Dict[str, object] = field(default_factory=dict)
    status: SessionStatus = SessionStatus.CONNECTED

    def touch(self, now: float) -> None:
        self.last_activity = max(self.last_activity, now)

    def serialise(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "connected_at": self.connected_at,
            "last_activity": self.last_activity,
            "client_info": dict(self.client_info),
            "status": self.status.value,
        }


@dataclass(order=True)
class QueueEntry:
    """A waiting player.

    Entries compare on ``sort_key`` only: ascending latency, then enqueue
    time, then insertion ticket.
    """

    sort_key: Tuple[float, float, int] = field(init=False, repr=False)
    player_id: str = field(compare=False)
    player_data: Dict[str, object] = field(compare=False)
    enqueued_at: float = field(compare=False)
    ticket: int = field(compare=False, default=0)

    def __post_init__(self) -> None:
        self.sort_key = (self.latency, self.enqueued_at, self.ticket)

    @property
    def latency(self) -> float:
        return latency_of(self.player_data)

    def serialise(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "player_data": dict(self.player_data),
            "enqueued_at": self.enqueued_at,
        }


def latency_of(player_data: Mapping[str, object]) -> float:
    """Return the latency metric of ``player_data``; missing sorts last."""

    raw = player_data.get("ping", player_data.get("latency"))
    if raw is None:
        return math.inf
    if isinstance(raw, bool):
        raise ValueError("latency must be a number")
    value = float(raw)  # type: ignore[arg-type]
    if math.isnan(value) or value < 0:
        raise ValueError("latency must be a non-negative number")
    return value


class QueueStatus(str, Enum):
    """What a polling player is told about their place in matchmaking."""

    NOT_QUEUED = "not_queued"
    WAITING = "waiting"
    EXPIRED = "expired"
    MATCH_PROPOSED = "match_proposed"
    IN_GAME = "in_game"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"


class MatchStatus(str, Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class CancelReason(str, Enum):
    REJECTED_BY_PLAYER = "rejected_by_player"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    PLAYER_DISCONNECTED = "player_disconnected"


@dataclass(slots=True)
class Match:
    """A proposed pairing and its confirmation handshake."""

    match_id: str
    players: Tuple[str, str]
    created_at: float
    deadline: float
    player_data: Dict[str, Dict[str, object]] = field(default_factory=dict)
    confirmations: Dict[str, ConfirmationStatus] = field(default_factory=dict)
    status: MatchStatus = MatchStatus.PROPOSED
    cancel_reason: Optional[CancelReason] = None
    resolved_at: Optional[float] = None

    def __post_init__(self) -> None:
        for player_id in self.players:
            self.confirmations.setdefault(player_id, ConfirmationStatus.PENDING)

    @property
    def is_terminal(self) -> bool:
        return self.status is not MatchStatus.PROPOSED

    def opponent_of(self, player_id: str) -> str:
        first, second = self.players
        return second if player_id == first else first

    def all_ready(self) -> bool:
        return all(status is ConfirmationStatus.READY for status in self.confirmations.values())

    def serialise(self) -> Dict[str, object]:
        return {
            "match_id": self.match_id,
            "players": list(self.players),
            "confirmations": {pid: status.value for pid, status in self.confirmations.items()},
            "status": self.status.value,
            "cancel_reason": self.cancel_reason.value if self.cancel_reason else None,
            "created_at": self.created_at,
            "deadline": self.deadline,
            "resolved_at": self.resolved_at,
        }


@dataclass(frozen=True)
class PlayerState:
    """Per-player slice of the authoritative game state."""

    position: Vector2
    health: int
    score: int = 0
    last_action_at: Optional[float] = None

    def serialise(self) -> Dict[str, object]:
        return {
            "x": self.position[0],
            "y": self.position[1],
            "health": self.health,
            "score": self.score,
            "last_action_at": self.last_action_at,
        }


@dataclass(frozen=True)
class Obstacle:
    position: Vector2
    size: Vector2

    def serialise(self) -> Dict[str, object]:
        return {
            "x": self.position[0],
            "y": self.position[1],
            "width": self.size[0],
            "height": self.size[1],
        }


@dataclass(frozen=True)
class World:
    """Shared data generated once per game session."""

    width: int
    height: int
    obstacles: Tuple[Obstacle, ...] = ()

    def clamp(self, position: Vector2) -> Vector2:
        x = min(max(position[0], 0.0), float(self.width))
        y = min(max(position[1], 0.0), float(self.height))
        return (x, y)

    def serialise(self) -> Dict[str, object]:
        return {
            "width": self.width,
            "height": self.height,
            "obstacles": [obstacle.serialise() for obstacle in self.obstacles],
        }


@dataclass(frozen=True)
class GameState:
    """Authoritative state of one game session.

    ``players`` must not be mutated in place; ``with_player`` returns a new
    state sharing the world and every untouched player slice.
    """

    players: Mapping[str, PlayerState]
    world: World
    version: int = 0

    def with_player(self, player_id: str, player_state: PlayerState) -> "GameState":
        players = dict(self.players)
        players[player_id] = player_state
        return GameState(players=players, world=self.world, version=self.version + 1)

    def without_player(self, player_id: str) -> "GameState":
        players = {pid: state for pid, state in self.players.items() if pid != player_id}
        return GameState(players=players, world=self.world, version=self.version + 1)

    def serialise(self) -> Dict[str, object]:
        return {
            "players": {pid: state.serialise() for pid, state in self.players.items()},
            "world": self.world.serialise(),
            "version": self.version,
        }


@dataclass(slots=True)
class GameSession:
    """Holder of the current ``GameState`` of a confirmed match."""

    match_id: str
    participants: List[str]
    state: GameState
    started_at: float
    last_update: float

    def serialise(self) -> Dict[str, object]:
        return {
            "match_id": self.match_id,
            "participants": list(self.participants),
            "state": self.state.serialise(),
            "started_at": self.started_at,
            "last_update": self.last_update,
        }


@dataclass(slots=True)
class Notification:
    """Outbound message waiting in a player's mailbox."""

    kind: str
    payload: Dict[str, object]
    created_at: float

    def serialise(self) -> Dict[str, object]:
        return {"type": self.kind, "payload": dict(self.payload), "created_at": self.created_at}
