"""Error taxonomy shared by the core services and the HTTP layer."""

from __future__ import annotations


class MatchmakingError(RuntimeError):
    """Base class for failures reported to callers."""

    code = "error"


class InvalidArgument(MatchmakingError):
    """Raised when an identifier or payload is missing or malformed."""

    code = "invalid_argument"


class NotFound(MatchmakingError):
    """Raised for an unknown player, match or game session."""

    code = "not_found"


class Conflict(MatchmakingError):
    """Raised when an operation contradicts the current state."""

    code = "conflict"


class AlreadyQueued(Conflict):
    """Raised when a player joins the queue twice."""

    code = "already_queued"


class UnsupportedAction(MatchmakingError):
    """Raised for an action kind the game engine does not know."""

    code = "unsupported_action"


class ConfirmationTimeout(MatchmakingError):
    """Internal trigger: a proposed match ran past its deadline."""

    code = "timeout"


class InternalError(MatchmakingError):
    code = "internal"


class StoreUnavailable(InternalError):
    """Raised by a match store that cannot accept writes."""

    code = "store_unavailable"


__all__ = [
    "AlreadyQueued",
    "ConfirmationTimeout",
    "Conflict",
    "InternalError",
    "InvalidArgument",
    "MatchmakingError",
    "NotFound",
    "StoreUnavailable",
    "UnsupportedAction",
]
