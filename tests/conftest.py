from __future__ import annotations

from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from mobe.config import ServerConfig
from mobe.game_server import GameServer
from mobe.store import MemoryMatchStore


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> MemoryMatchStore:
    return MemoryMatchStore()


@pytest.fixture()
def config() -> ServerConfig:
    return ServerConfig(
        player_idle_timeout=30.0,
        queue_stale_timeout=60.0,
        confirmation_timeout=5.0,
        match_idle_timeout=120.0,
        finished_match_retention=10.0,
        obstacle_count=3,
    )


@pytest_asyncio.fixture()
async def server(config: ServerConfig, store: MemoryMatchStore, clock: FakeClock):
    game_server = GameServer(config, store=store, clock=clock, seed=7)
    yield game_server
    await game_server.stop()


async def queue_players(
    server: GameServer, pings: Dict[str, Optional[float]], clock: Optional[FakeClock] = None
) -> List[str]:
    """Connect and enqueue players in order, one clock tick apart."""

    for player_id, ping in pings.items():
        await server.connect(player_id, {"client": "test"})
        data = {"name": player_id.title()}
        if ping is not None:
            data["ping"] = ping
        await server.join_queue(player_id, data)
        if clock is not None:
            clock.advance(0.1)
    return list(pings)
