"""Player actions accepted by the game session engine.

The set of actions is closed: ``parse_action`` maps a wire payload onto one
of the dataclasses below and anything it does not recognise becomes an
``UnknownAction``, which the engine rejects.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple, Union

from .errors import InvalidArgument


@dataclass(frozen=True)
class MoveAction:
    x: float
    y: float

    kind = "move"


@dataclass(frozen=True)
class AttackAction:
    """Fire a projectile from the player's position towards ``(x, y)``."""

    x: float
    y: float

    kind = "attack"


@dataclass(frozen=True)
class UnknownAction:
    kind: str
    payload: Dict[str, object] = field(default_factory=dict)


Action = Union[MoveAction, AttackAction, UnknownAction]


def parse_action(message: Mapping[str, object]) -> Action:
    """Build an action from ``{"action": kind, "payload": {...}}``."""

    kind = message.get("action")
    if not isinstance(kind, str) or not kind:
        raise InvalidArgument("action kind is required")
    payload = message.get("payload") or {}
    if not isinstance(payload, Mapping):
        raise InvalidArgument("action payload must be an object")
    if kind == MoveAction.kind:
        return MoveAction(*_coordinates(payload))
    if kind == AttackAction.kind:
        return AttackAction(*_coordinates(payload))
    return UnknownAction(kind=kind, payload=dict(payload))


def _coordinates(payload: Mapping[str, object]) -> Tuple[float, float]:
    try:
        x = float(payload["x"])  # type: ignore[arg-type]
        y = float(payload["y"])  # type: ignore[arg-type]
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidArgument("payload requires numeric x and y") from exc
    if not (math.isfinite(x) and math.isfinite(y)):
        raise InvalidArgument("coordinates must be finite")
    return x, y


__all__ = ["Action", "AttackAction", "MoveAction", "UnknownAction", "parse_action"]
