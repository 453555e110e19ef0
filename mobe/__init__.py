"""Matchmaking and game-session server for Mobe.

Players connect, join a latency-ordered queue, are paired two at a time,
confirm the proposed match within a deadline and then play in an
authoritative in-memory game session.  ``GameServer`` is the entry point for
embedding; ``mobe.api.create_app`` wraps it in a FastAPI application.
"""

from .config import ServerConfig
from .errors import (
    AlreadyQueued,
    Conflict,
    InternalError,
    InvalidArgument,
    MatchmakingError,
    NotFound,
    StoreUnavailable,
    UnsupportedAction,
)
from .game_server import GameServer

__all__ = [
    "AlreadyQueued",
    "Conflict",
    "GameServer",
    "InternalError",
    "InvalidArgument",
    "MatchmakingError",
    "NotFound",
    "ServerConfig",
    "StoreUnavailable",
    "UnsupportedAction",
]
