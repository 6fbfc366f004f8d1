import asyncio
from datetime import timedelta

import pytest

from redblue.core.errors import SessionNotActiveError
from redblue.game.timers import PAUSE_TIMER, ROUND_TIMER
from redblue.models.game_session import AfterGameHandler, GameState, PlayerRole, utcnow
from tests.conftest import start_game, watch


@pytest.mark.asyncio
async def test_disconnect_pauses_active_game(manager):
    game_id, t1, _ = await start_game(manager)
    feed = watch(manager, game_id)

    assert await manager.handle_disconnect(game_id, PlayerRole.player1)

    session = manager.get_game_session(game_id)
    assert session.game_state == GameState.pause
    assert session.player1.disconnected_at is not None
    assert not manager.timers.is_armed(game_id, ROUND_TIMER)
    assert manager.timers.is_armed(game_id, PAUSE_TIMER)

    event = feed.of_type("disconnect")[0]
    assert event["player_name"] == "Alice"
    assert event["game_state"] == "pause"
    assert event["pause_deadline"] is not None

    with pytest.raises(SessionNotActiveError, match="paused"):
        await manager.submit_choice(game_id, 1, "Alice", "RED", t1)


@pytest.mark.asyncio
async def test_repeated_disconnect_is_a_noop(manager):
    game_id, _, _ = await start_game(manager)
    await manager.handle_disconnect(game_id, PlayerRole.player1)
    assert not await manager.handle_disconnect(game_id, PlayerRole.player1)


@pytest.mark.asyncio
async def test_reconnect_resumes_and_restarts_round_clock(manager):
    game_id, t1, t2 = await start_game(manager)
    session = manager.get_game_session(game_id)
    original_start = session.rounds[0].created_at
    await manager.submit_choice(game_id, 1, "Alice", "RED", t1)

    await manager.handle_disconnect(game_id, PlayerRole.player2)
    feed = watch(manager, game_id)
    assert await manager.handle_reconnect(game_id, PlayerRole.player2)

    assert session.game_state == GameState.active
    assert session.player2.disconnected_at is None
    assert session.rounds[0].created_at > original_start
    assert session.rounds[0].player1_choice == "RED"
    assert manager.timers.is_armed(game_id, ROUND_TIMER)
    assert not manager.timers.is_armed(game_id, PAUSE_TIMER)
    assert feed.of_type("reconnect")[0]["game_state"] == "active"

    await manager.submit_choice(game_id, 1, "Bob", "RED", t2)
    assert session.current_round == 2


@pytest.mark.asyncio
async def test_snapshot_request_counts_as_reconnect(manager):
    game_id, t1, _ = await start_game(manager)
    await manager.handle_disconnect(game_id, PlayerRole.player1)

    snapshot = await manager.get_snapshot(game_id, t1)

    assert snapshot["game_state"] == "active"
    assert snapshot["player1_disconnected_at"] is None


@pytest.mark.asyncio
async def test_stays_paused_while_other_player_is_away(manager):
    game_id, _, _ = await start_game(manager)
    await manager.handle_disconnect(game_id, PlayerRole.player1)
    await manager.handle_disconnect(game_id, PlayerRole.player2)

    session = manager.get_game_session(game_id)
    assert session.player2.disconnected_at is not None

    await manager.handle_reconnect(game_id, PlayerRole.player1)

    assert session.game_state == GameState.pause
    assert session.player1.disconnected_at is None
    assert manager.timers.is_armed(game_id, PAUSE_TIMER)
    assert manager.presence.pause_deadline(session) == (
        session.player2.disconnected_at + manager.presence.pause_timeout
    )


@pytest.mark.asyncio
async def test_disconnect_in_lobby_does_not_pause(manager):
    created = await manager.create_game("Alice")
    await manager.handle_disconnect(created["game_id"], PlayerRole.player1)

    session = manager.get_game_session(created["game_id"])
    assert session.game_state == GameState.waiting
    assert not session.player1.connected
    assert session.player1.disconnected_at is not None
    assert not manager.timers.is_armed(created["game_id"], PAUSE_TIMER)


@pytest.mark.asyncio
async def test_join_while_host_is_away_pauses_the_game(manager):
    created = await manager.create_game("Alice")
    game_id = created["game_id"]
    await manager.handle_disconnect(game_id, PlayerRole.player1)
    feed = watch(manager, game_id)
    lobby_stamp = manager.get_game_session(game_id).player1.disconnected_at

    await manager.join_game("Bob", manager.get_game_session(game_id).code)

    session = manager.get_game_session(game_id)
    assert session.game_state == GameState.pause
    assert session.current_round == 1
    assert session.player1.disconnected_at > lobby_stamp
    assert manager.timers.is_armed(game_id, PAUSE_TIMER)
    assert not manager.timers.is_armed(game_id, ROUND_TIMER)
    assert feed.types() == ["lobby_active", "round_started", "disconnect"]

    await manager.handle_reconnect(game_id, PlayerRole.player1)
    assert session.game_state == GameState.active
    assert manager.timers.is_armed(game_id, ROUND_TIMER)


@pytest.mark.asyncio
async def test_host_lost_in_lobby_still_gets_abandoned(make_manager):
    manager = await make_manager(PAUSE_TIMEOUT_MINUTES=0.005)  # 0.3s
    created = await manager.create_game("Alice")
    game_id = created["game_id"]
    await manager.handle_disconnect(game_id, PlayerRole.player1)
    await manager.join_game("Bob", manager.get_game_session(game_id).code)

    await manager.handle_disconnect(game_id, PlayerRole.player2)
    await manager.handle_reconnect(game_id, PlayerRole.player2)
    assert manager.timers.is_armed(game_id, PAUSE_TIMER)
    await asyncio.sleep(0.6)

    session = manager.get_game_session(game_id)
    assert session.game_state == GameState.abandoned
    assert session.finish_reason == "abandon"


@pytest.mark.asyncio
async def test_pause_timer_pins_missing_disconnect_stamp(manager):
    game_id, _, _ = await start_game(manager)
    session = manager.get_game_session(game_id)
    session.player1.connection = "disconnected"
    session.transition(GameState.pause)

    before = utcnow()
    deadline = manager.presence.arm_pause_timer(session)

    assert session.player1.disconnected_at >= before
    assert deadline == session.player1.disconnected_at + manager.presence.pause_timeout
    assert manager.timers.is_armed(game_id, PAUSE_TIMER)


@pytest.mark.asyncio
async def test_pause_expiry_abandons_game(make_manager):
    manager = await make_manager(PAUSE_TIMEOUT_MINUTES=0.005)  # 0.3s
    handled = []
    manager.register_after_game_handler(_Recorder(handled))
    game_id, _, _ = await start_game(manager)
    feed = watch(manager, game_id)

    await manager.handle_disconnect(game_id, PlayerRole.player1)
    await asyncio.sleep(0.5)

    session = manager.get_game_session(game_id)
    assert session.game_state == GameState.abandoned
    assert session.finish_reason == "abandon"
    finished = feed.of_type("game_finished")[0]
    assert finished["finish_reason"] == "abandon"
    assert finished["game_state"] == "abandoned"

    await manager.wait_for_after_game_handlers()
    assert handled == [game_id]


@pytest.mark.asyncio
async def test_reconnect_in_time_cancels_abandonment(make_manager):
    manager = await make_manager(PAUSE_TIMEOUT_MINUTES=0.005)
    game_id, _, _ = await start_game(manager)

    await manager.handle_disconnect(game_id, PlayerRole.player1)
    await asyncio.sleep(0.1)
    await manager.handle_reconnect(game_id, PlayerRole.player1)
    await asyncio.sleep(0.4)

    assert manager.get_game_session(game_id).game_state == GameState.active


@pytest.mark.asyncio
async def test_stale_pause_timer_is_ignored_after_surrender(make_manager):
    manager = await make_manager(PAUSE_TIMEOUT_MINUTES=0.005)
    game_id, t1, _ = await start_game(manager)
    await manager.handle_disconnect(game_id, PlayerRole.player2)

    await manager.abandon(game_id, "Alice", t1)
    await manager.presence._on_pause_timeout(game_id)

    session = manager.get_game_session(game_id)
    assert session.game_state == GameState.finished
    assert session.finish_reason == "abandon"


@pytest.mark.asyncio
async def test_early_pause_timer_rearms_instead_of_abandoning(manager):
    game_id, _, _ = await start_game(manager)
    await manager.handle_disconnect(game_id, PlayerRole.player1)

    await manager.presence._on_pause_timeout(game_id)

    session = manager.get_game_session(game_id)
    assert session.game_state == GameState.pause
    assert manager.timers.is_armed(game_id, PAUSE_TIMER)

    session.player1.disconnected_at = utcnow() - timedelta(minutes=11)
    await manager.presence._on_pause_timeout(game_id)
    assert session.game_state == GameState.abandoned


class _Recorder(AfterGameHandler):
    def __init__(self, sink):
        self.sink = sink

    async def handle(self, game):
        self.sink.append(game.id)
