"""Tests for the authoritative game session engine."""
from __future__ import annotations

import pytest

from mobe.actions import AttackAction, MoveAction, UnknownAction, parse_action
from mobe.config import ServerConfig
from mobe.engine import GameSessionEngine
from mobe.errors import Conflict, InvalidArgument, NotFound, UnsupportedAction


@pytest.fixture()
def engine(clock) -> GameSessionEngine:
    config = ServerConfig(world_width=200, world_height=100, obstacle_count=4, starting_health=80)
    engine = GameSessionEngine(config, seed=42, clock=clock)
    engine.create_session("m1", ["alice", "bob"])
    return engine


def test_session_starts_with_default_player_state(engine: GameSessionEngine) -> None:
    session = engine.get("m1")
    assert session.participants == ["alice", "bob"]
    assert set(session.state.players) == {"alice", "bob"}
    for player in session.state.players.values():
        assert player.health == 80
        assert player.score == 0
        assert 0 <= player.position[0] <= 200
        assert 0 <= player.position[1] <= 100
    assert len(session.state.world.obstacles) == 4
    assert engine.session_for("bob") is session


def test_session_is_created_only_once(engine: GameSessionEngine) -> None:
    with pytest.raises(Conflict):
        engine.create_session("m1", ["alice", "bob"])
    assert len(engine) == 1


def test_same_seed_generates_the_same_world(clock) -> None:
    first = GameSessionEngine(ServerConfig(), seed=3, clock=clock).create_session("m", ["a", "b"])
    second = GameSessionEngine(ServerConfig(), seed=3, clock=clock).create_session("m", ["a", "b"])
    assert first.state == second.state


def test_moves_apply_in_order(engine: GameSessionEngine, clock) -> None:
    events = []
    for target in ((1, 1), (2, 2)):
        clock.advance(1)
        state, emitted = engine.apply_action("m1", "alice", MoveAction(*target))
        events.extend(emitted)
    assert state.players["alice"].position == (2.0, 2.0)
    assert state.players["alice"].last_action_at == clock.now
    assert [(e["type"], e["x"], e["y"]) for e in events] == [
        ("player_moved", 1.0, 1.0),
        ("player_moved", 2.0, 2.0),
    ]
    assert engine.get("m1").state is state
    assert engine.get("m1").last_update == clock.now


def test_moves_are_clamped_to_the_world(engine: GameSessionEngine) -> None:
    state, _ = engine.apply_action("m1", "bob", MoveAction(500, -20))
    assert state.players["bob"].position == (200.0, 0.0)


def test_attack_fires_without_moving(engine: GameSessionEngine) -> None:
    before = engine.get("m1").state.players["alice"].position
    state, events = engine.apply_action("m1", "alice", AttackAction(10, 20))
    assert state.players["alice"].position == before
    assert events == [
        {"type": "projectile_fired", "player": "alice", "origin": list(before), "target": [10.0, 20.0]}
    ]


def test_previous_state_is_never_modified(engine: GameSessionEngine) -> None:
    old_state = engine.get("m1").state
    old_alice = old_state.players["alice"]
    new_state, _ = engine.apply_action("m1", "alice", MoveAction(5, 5))
    assert old_state.players["alice"] is old_alice
    assert old_state.version + 1 == new_state.version
    assert new_state.world is old_state.world
    assert new_state.players["bob"] is old_state.players["bob"]


def test_unsupported_action_leaves_state_unchanged(engine: GameSessionEngine) -> None:
    session = engine.get("m1")
    state_before = session.state
    update_before = session.last_update
    with pytest.raises(UnsupportedAction):
        engine.apply_action("m1", "alice", UnknownAction("teleport", {"x": 1}))
    assert session.state is state_before
    assert session.last_update == update_before


def test_actions_need_a_live_session_and_a_participant(engine: GameSessionEngine) -> None:
    with pytest.raises(NotFound):
        engine.apply_action("missing", "alice", MoveAction(1, 1))
    with pytest.raises(NotFound):
        engine.apply_action("m1", "mallory", MoveAction(1, 1))


def test_last_player_leaving_destroys_the_session(engine: GameSessionEngine) -> None:
    assert engine.remove_player("m1", "alice") is False
    assert list(engine.get("m1").state.players) == ["bob"]
    assert engine.session_for("alice") is None
    assert engine.remove_player("m1", "bob") is True
    assert "m1" not in engine
    with pytest.raises(NotFound):
        engine.get("m1")


def test_idle_reports_sessions_without_recent_actions(engine: GameSessionEngine, clock) -> None:
    engine.create_session("m2", ["carol", "dave"])
    clock.advance(100)
    engine.apply_action("m2", "carol", MoveAction(1, 1))
    clock.advance(30)
    assert engine.idle(120) == ["m1"]


def test_parse_action_maps_known_kinds() -> None:
    assert parse_action({"action": "move", "payload": {"x": "3", "y": 4}}) == MoveAction(3.0, 4.0)
    assert parse_action({"action": "attack", "payload": {"x": 0, "y": 0}}) == AttackAction(0.0, 0.0)
    assert parse_action({"action": "dance"}) == UnknownAction("dance", {})


@pytest.mark.parametrize(
    "message",
    [
        {},
        {"action": ""},
        {"action": "move", "payload": {"x": 1}},
        {"action": "move", "payload": {"x": "left", "y": 1}},
        {"action": "attack", "payload": {"x": float("inf"), "y": 1}},
        {"action": "move", "payload": [1, 2]},
    ],
)
def test_parse_action_rejects_malformed_messages(message) -> None:
    with pytest.raises(InvalidArgument):
        parse_action(message)
