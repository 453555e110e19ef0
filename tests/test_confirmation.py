from __future__ import annotations

import asyncio

import pytest

from conftest import queue_players
from mobe.errors import Conflict, NotFound
from mobe.game_server import GameServer
from mobe.models import CancelReason, ConfirmationStatus, MatchStatus, QueueStatus


async def _proposed(server, clock, pings=None):
    await queue_players(server, pings or {"alice": 10, "bob": 20}, clock)
    (match,) = await server.run_pairing_cycle()
    for player_id in match.players:
        server.poll_notifications(player_id)
    return match


@pytest.mark.asyncio
async def test_both_accepting_confirms_and_starts_one_game(server, clock, monkeypatch):
    match = await _proposed(server, clock)
    created = []
    original = server.engine.create_session

    def counting_create(match_id, player_ids):
        created.append(match_id)
        return original(match_id, player_ids)

    monkeypatch.setattr(server.engine, "create_session", counting_create)
    results = await asyncio.gather(
        server.confirm(match.match_id, "alice", True),
        server.confirm(match.match_id, "bob", True),
    )
    assert all(result is match for result in results)
    assert match.status is MatchStatus.CONFIRMED
    assert created == [match.match_id]
    assert server.get_game(match.match_id).participants == ["alice", "bob"]
    assert server.confirmation.pending_timers() == 0
    assert server.queue_status("alice").status is QueueStatus.IN_GAME
    assert [n.kind for n in server.poll_notifications("bob")] == ["match_confirmed"]


@pytest.mark.asyncio
async def test_single_accept_leaves_match_proposed(server, clock):
    match = await _proposed(server, clock)
    await server.confirm(match.match_id, "alice", True)
    assert match.status is MatchStatus.PROPOSED
    assert match.confirmations == {"alice": ConfirmationStatus.READY, "bob": ConfirmationStatus.PENDING}
    assert match.match_id not in server.engine
    assert server.queue_status("bob").status is QueueStatus.MATCH_PROPOSED


@pytest.mark.asyncio
async def test_rejection_requeues_only_the_opponent(server, clock):
    match = await _proposed(server, clock)
    await server.confirm(match.match_id, "alice", False)
    assert match.status is MatchStatus.CANCELLED
    assert match.cancel_reason is CancelReason.REJECTED_BY_PLAYER
    assert "alice" not in server.queue
    assert server.queue.get("bob").player_data == {"name": "Bob", "ping": 20}
    assert server.queue_status("bob").status is QueueStatus.WAITING
    assert server.queue_status("alice").status is QueueStatus.NOT_QUEUED
    (note,) = server.poll_notifications("bob")
    assert note.kind == "match_cancelled"
    assert note.payload == {"match_id": match.match_id, "reason": "rejected_by_player", "requeued": True}


@pytest.mark.asyncio
async def test_confirming_a_finished_match_returns_its_status(server, clock):
    match = await _proposed(server, clock)
    await server.confirm(match.match_id, "bob", False)
    again = await server.confirm(match.match_id, "alice", True)
    assert again.status is MatchStatus.CANCELLED
    assert again.confirmations["alice"] is ConfirmationStatus.PENDING

    other = await _proposed(server, clock, {"carol": 5, "dave": 6})
    await server.confirm(other.match_id, "carol", True)
    await server.confirm(other.match_id, "dave", True)
    assert (await server.confirm(other.match_id, "dave", False)).status is MatchStatus.CONFIRMED
    assert other.cancel_reason is None


@pytest.mark.asyncio
async def test_confirm_rejects_unknown_matches_and_outsiders(server, clock):
    match = await _proposed(server, clock)
    await server.connect("mallory")
    with pytest.raises(NotFound):
        await server.confirm("no-such-match", "alice", True)
    with pytest.raises(NotFound):
        await server.confirm(match.match_id, "mallory", True)
    assert match.status is MatchStatus.PROPOSED


@pytest.mark.asyncio
async def test_matched_player_cannot_queue_again(server, clock):
    match = await _proposed(server, clock)
    with pytest.raises(Conflict):
        await server.join_queue("alice", {"ping": 1})
    await server.confirm(match.match_id, "alice", True)
    await server.confirm(match.match_id, "bob", True)
    with pytest.raises(Conflict):
        await server.join_queue("bob", {"ping": 1})


@pytest.mark.asyncio
async def test_deadline_cancels_and_requeues_both_players_once(config, store, clock):
    server = GameServer(config.model_copy(update={"confirmation_timeout": 0.05}), store=store, clock=clock)
    try:
        match = await _proposed(server, clock)
        await asyncio.sleep(0.2)
        assert match.status is MatchStatus.CANCELLED
        assert match.cancel_reason is CancelReason.CONFIRMATION_TIMEOUT
        assert len(server.queue) == 2
        assert [entry.player_id for entry in server.queue.snapshot()] == ["alice", "bob"]
        assert server.confirmation.active_match_for("alice") is None
        assert server.confirmation.pending_timers() == 0
        assert [n.payload["reason"] for n in server.poll_notifications("alice")] == ["confirmation_timeout"]
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_deadline_skips_players_who_went_away(config, store, clock):
    server = GameServer(config.model_copy(update={"confirmation_timeout": 0.05}), store=store, clock=clock)
    try:
        match = await _proposed(server, clock)
        # A session vanishing without the disconnect path, e.g. a lost instance.
        server.sessions.remove("bob")
        await asyncio.sleep(0.2)
        assert match.cancel_reason is CancelReason.CONFIRMATION_TIMEOUT
        assert "alice" in server.queue
        assert "bob" not in server.queue
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_confirmed_match_ignores_its_old_deadline(config, store, clock):
    server = GameServer(config.model_copy(update={"confirmation_timeout": 0.05}), store=store, clock=clock)
    try:
        match = await _proposed(server, clock)
        await server.confirm(match.match_id, "alice", True)
        await server.confirm(match.match_id, "bob", True)
        await asyncio.sleep(0.15)
        assert match.status is MatchStatus.CONFIRMED
        assert len(server.queue) == 0
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_disconnect_cancels_a_proposed_match(server, clock):
    match = await _proposed(server, clock)
    assert await server.disconnect("alice") is True
    assert match.status is MatchStatus.CANCELLED
    assert match.cancel_reason is CancelReason.PLAYER_DISCONNECTED
    assert server.confirmation.pending_timers() == 0
    assert "bob" in server.queue
    assert "alice" not in server.queue


@pytest.mark.asyncio
async def test_finished_matches_are_forgotten_after_retention(server, clock):
    match = await _proposed(server, clock)
    await server.confirm(match.match_id, "alice", False)
    clock.advance(5)
    report = await server.sweep()
    assert report.matches_forgotten == []
    assert server.get_match(match.match_id) is match
    clock.advance(6)
    report = await server.sweep()
    assert report.matches_forgotten == [match.match_id]
    with pytest.raises(NotFound):
        server.get_match(match.match_id)


@pytest.mark.asyncio
async def test_match_status_is_written_through(server, store, clock):
    match = await _proposed(server, clock)
    assert store.matches[match.match_id]["status"] == "proposed"
    await server.confirm(match.match_id, "alice", True)
    await server.confirm(match.match_id, "bob", True)
    await server.confirmation.flush()
    assert store.matches[match.match_id]["status"] == "confirmed"


@pytest.mark.asyncio
async def test_deadline_counts_from_proposal_not_from_registration(config, store, clock):
    server = GameServer(config.model_copy(update={"confirmation_timeout": 0.2}), store=store, clock=clock)
    original_save = store.save_match

    async def slow_save(match):
        clock.advance(0.15)
        await original_save(match)

    store.save_match = slow_save
    try:
        await queue_players(server, {"alice": 10, "bob": 20})
        (match,) = await server.run_pairing_cycle()
        (note,) = server.poll_notifications("alice")
        assert note.payload["deadline"] == match.deadline
        assert match.deadline - clock.now == pytest.approx(0.05)
        await asyncio.sleep(0.12)
        assert match.cancel_reason is CancelReason.CONFIRMATION_TIMEOUT
    finally:
        await server.stop()
