import json
from unittest.mock import AsyncMock

import pytest

from redblue.database.mysql_connection_manager import MySQLConnectionManager
from redblue.game.after_game_handlers import ArchiveGameAfterGameHandler
from redblue.models.archived_game import ArchivedGame
from redblue.repositories.games_repository import GamesRepository
from tests.conftest import start_game


async def finish_by_surrender(manager, game_id, t1, t2):
    await manager.submit_choice(game_id, 1, "Alice", "RED", t1)
    await manager.submit_choice(game_id, 1, "Bob", "BLUE", t2)
    await manager.abandon(game_id, "Alice", t1)


@pytest.mark.asyncio
async def test_finished_game_is_archived(manager):
    repository = AsyncMock(spec=GamesRepository)
    manager.register_after_game_handler(ArchiveGameAfterGameHandler(repository))
    game_id, t1, t2 = await start_game(manager)

    await finish_by_surrender(manager, game_id, t1, t2)
    await manager.wait_for_after_game_handlers()

    repository.archive_game.assert_awaited_once()
    archived = repository.archive_game.await_args.args[0]
    assert isinstance(archived, ArchivedGame)
    assert archived.session_id == game_id
    assert archived.game_state == "finished"
    assert archived.finish_reason == "abandon"
    assert archived.rounds_played == 1
    assert archived.winner_name == "Bob"


@pytest.mark.asyncio
async def test_archive_failure_does_not_affect_the_game(manager):
    repository = AsyncMock(spec=GamesRepository)
    repository.archive_game.side_effect = ConnectionError("db down")
    manager.register_after_game_handler(ArchiveGameAfterGameHandler(repository))
    game_id, t1, t2 = await start_game(manager)

    await finish_by_surrender(manager, game_id, t1, t2)
    await manager.wait_for_after_game_handlers()

    assert manager.get_game_session(game_id).game_state == "finished"


@pytest.mark.asyncio
async def test_unfinished_games_are_not_archived(manager):
    repository = AsyncMock(spec=GamesRepository)
    handler = ArchiveGameAfterGameHandler(repository)
    game_id, _, _ = await start_game(manager)

    await handler(manager.get_game_session(game_id))

    repository.archive_game.assert_not_awaited()


@pytest.mark.asyncio
async def test_repository_inserts_archived_row(manager):
    db = AsyncMock(spec=MySQLConnectionManager)
    db.execute_query.return_value = 7
    repository = GamesRepository(db)
    game_id, t1, t2 = await start_game(manager)
    await finish_by_surrender(manager, game_id, t1, t2)

    row_id = await repository.archive_game(
        ArchivedGame.from_session(manager.get_game_session(game_id))
    )

    assert row_id == 7
    query, params = db.execute_query.await_args.args
    assert query.startswith("INSERT INTO games (session_id, code, player1_name")
    columns = query[query.index("(") + 1 : query.index(")")].split(", ")
    row = dict(zip(columns, params))
    assert row["session_id"] == game_id
    assert row["winner_name"] == "Bob"
    assert json.loads(row["rounds"])[0]["player1_choice"] == "RED"
    assert row["created_at"].tzinfo is None
    assert row["finished_at"].tzinfo is None


@pytest.mark.asyncio
async def test_repository_reads_archived_row():
    db = AsyncMock(spec=MySQLConnectionManager)
    db.execute_query.return_value = {
        "id": 7,
        "session_id": "s1",
        "code": "ABC123",
        "player1_name": "Alice",
        "player2_name": "Bob",
        "player1_score": 3,
        "player2_score": 3,
        "rounds_played": 1,
        "rounds": json.dumps([{"round_number": 1}]),
        "game_state": "finished",
        "finish_reason": "finish",
        "winner_name": None,
        "created_at": "2026-01-01T12:00:00",
        "finished_at": "2026-01-01T12:10:00",
    }
    repository = GamesRepository(db)

    archived = await repository.get_archived_game("s1")

    assert archived.id == 7
    assert archived.rounds == [{"round_number": 1}]
    query, params = db.execute_query.await_args.args
    assert "WHERE session_id = %s" in query
    assert params == ["s1"]
