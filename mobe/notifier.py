"""Per-player mailboxes for outbound notifications."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List

from .models import Notification

MAILBOX_SIZE = 32


@dataclass(slots=True)
class Mailbox:
    """Bounded queue of notifications; the oldest are dropped when full."""

    _queue: Deque[Notification] = field(default_factory=lambda: deque(maxlen=MAILBOX_SIZE))

    def push(self, notification: Notification) -> None:
        self._queue.append(notification)

    def drain(self) -> List[Notification]:
        notifications = list(self._queue)
        self._queue.clear()
        return notifications


class Notifier:
    """Collects notifications until the player polls for them."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._mailboxes: Dict[str, Mailbox] = {}
        self._clock = clock

    def notify(self, player_id: str, kind: str, **payload: object) -> Notification:
        notification = Notification(kind=kind, payload=dict(payload), created_at=self._clock())
        self._mailboxes.setdefault(player_id, Mailbox()).push(notification)
        return notification

    def drain(self, player_id: str) -> List[Notification]:
        mailbox = self._mailboxes.get(player_id)
        return mailbox.drain() if mailbox else []

    def discard(self, player_id: str) -> None:
        self._mailboxes.pop(player_id, None)


__all__ = ["Mailbox", "Notifier"]
