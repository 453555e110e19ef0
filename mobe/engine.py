"""Authoritative game sessions for confirmed matches.

The engine owns one ``GameSession`` per confirmed match.  Actions never
mutate state in place: each handler computes a complete new ``GameState``
from the current one and the engine commits it in a single assignment, so
readers either see the state before the action or after it.
"""

from __future__ import annotations

import random
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from .actions import Action, AttackAction, MoveAction
from .config import ServerConfig
from .errors import Conflict, InvalidArgument, NotFound, UnsupportedAction
from .models import GameSession, GameState, Obstacle, PlayerState, World

logger = structlog.get_logger(__name__)

Event = Dict[str, object]

SPAWN_MARGIN = 20.0
OBSTACLE_MIN_SIZE = 10.0
OBSTACLE_MAX_SIZE = 60.0


class GameSessionEngine:
    """Creates, mutates and tears down game sessions."""

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or ServerConfig()
        self.random = random.Random(seed)
        self._clock = clock
        self._sessions: Dict[str, GameSession] = {}
        self._by_player: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create_session(self, match_id: str, player_ids: Sequence[str]) -> GameSession:
        if match_id in self._sessions:
            raise Conflict(f"match {match_id!r} already has a game session")
        if not player_ids:
            raise InvalidArgument("a game session needs at least one player")
        if len(set(player_ids)) != len(player_ids):
            raise InvalidArgument("duplicate participants")
        now = self._clock()
        world = self._generate_world()
        players = {
            player_id: PlayerState(position=self._spawn_position(world), health=self.config.starting_health)
            for player_id in player_ids
        }
        session = GameSession(
            match_id=match_id,
            participants=list(player_ids),
            state=GameState(players=players, world=world),
            started_at=now,
            last_update=now,
        )
        self._sessions[match_id] = session
        for player_id in player_ids:
            self._by_player[player_id] = match_id
        logger.info("game session created", match_id=match_id, players=list(player_ids))
        return session

    def remove_player(self, match_id: str, player_id: str) -> bool:
        """Evict ``player_id``; return True if the session was destroyed as a result."""

        session = self._sessions.get(match_id)
        if session is None or player_id not in session.participants:
            return False
        session.participants = [pid for pid in session.participants if pid != player_id]
        session.state = session.state.without_player(player_id)
        session.last_update = self._clock()
        if self._by_player.get(player_id) == match_id:
            del self._by_player[player_id]
        logger.info("player left game session", match_id=match_id, player_id=player_id)
        if not session.participants:
            self.destroy(match_id)
            return True
        return False

    def destroy(self, match_id: str) -> Optional[GameSession]:
        session = self._sessions.pop(match_id, None)
        if session is None:
            return None
        for player_id in session.participants:
            if self._by_player.get(player_id) == match_id:
                del self._by_player[player_id]
        logger.info("game session destroyed", match_id=match_id)
        return session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, match_id: str) -> GameSession:
        session = self._sessions.get(match_id)
        if session is None:
            raise NotFound(f"no active game session for match {match_id!r}")
        return session

    def session_for(self, player_id: str) -> Optional[GameSession]:
        match_id = self._by_player.get(player_id)
        return self._sessions.get(match_id) if match_id else None

    def idle(self, timeout: float, now: Optional[float] = None) -> List[str]:
        now = self._clock() if now is None else now
        return [mid for mid, session in self._sessions.items() if now - session.last_update > timeout]

    def __contains__(self, match_id: object) -> bool:
        return match_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def apply_action(self, match_id: str, player_id: str, action: Action) -> Tuple[GameState, List[Event]]:
        session = self.get(match_id)
        if player_id not in session.participants:
            raise NotFound(f"player {player_id!r} is not part of match {match_id!r}")
        now = self._clock()
        if isinstance(action, MoveAction):
            new_state, events = self._handle_move(session.state, player_id, action, now)
        elif isinstance(action, AttackAction):
            new_state, events = self._handle_attack(session.state, player_id, action, now)
        else:
            kind = getattr(action, "kind", type(action).__name__)
            logger.warning("unsupported action rejected", match_id=match_id, player_id=player_id, kind=kind)
            raise UnsupportedAction(f"unsupported action {kind!r}")
        session.state = new_state
        session.last_update = now
        return new_state, events

    def _handle_move(
        self, state: GameState, player_id: str, action: MoveAction, now: float
    ) -> Tuple[GameState, List[Event]]:
        position = state.world.clamp((action.x, action.y))
        current = state.players[player_id]
        new_state = state.with_player(player_id, replace(current, position=position, last_action_at=now))
        return new_state, [{"type": "player_moved", "player": player_id, "x": position[0], "y": position[1]}]

    def _handle_attack(
        self, state: GameState, player_id: str, action: AttackAction, now: float
    ) -> Tuple[GameState, List[Event]]:
        current = state.players[player_id]
        new_state = state.with_player(player_id, replace(current, last_action_at=now))
        event: Event = {
            "type": "projectile_fired",
            "player": player_id,
            "origin": list(current.position),
            "target": [action.x, action.y],
        }
        return new_state, [event]

    # ------------------------------------------------------------------
    # World generation
    # ------------------------------------------------------------------
    def _generate_world(self) -> World:
        width, height = self.config.world_width, self.config.world_height
        obstacles = tuple(self._random_obstacle(width, height) for _ in range(self.config.obstacle_count))
        return World(width=width, height=height, obstacles=obstacles)

    def _random_obstacle(self, width: int, height: int) -> Obstacle:
        size = (
            self.random.uniform(OBSTACLE_MIN_SIZE, OBSTACLE_MAX_SIZE),
            self.random.uniform(OBSTACLE_MIN_SIZE, OBSTACLE_MAX_SIZE),
        )
        position = (
            self.random.uniform(0, max(0.0, width - size[0])),
            self.random.uniform(0, max(0.0, height - size[1])),
        )
        return Obstacle(position=position, size=size)

    def _spawn_position(self, world: World) -> Tuple[float, float]:
        margin_x = min(SPAWN_MARGIN, world.width / 2)
        margin_y = min(SPAWN_MARGIN, world.height / 2)
        return (
            self.random.uniform(margin_x, world.width - margin_x),
            self.random.uniform(margin_y, world.height - margin_y),
        )


__all__ = ["GameSessionEngine", "Event"]
