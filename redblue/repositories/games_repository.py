# redblue/repositories/games_repository.py

import json
import logging
from typing import Optional

from redblue.database.mysql_connection_manager import MySQLConnectionManager
from redblue.database.query_manager import QueryManager
from ..models.archived_game import ArchivedGame

logger = logging.getLogger(__name__)

CREATE_GAMES_TABLE = """
CREATE TABLE IF NOT EXISTS games (
    id BIGINT UNSIGNED AUTO_INCREMENT PRIMARY KEY,
    session_id VARCHAR(64) NOT NULL UNIQUE,
    code CHAR(6) NOT NULL,
    player1_name VARCHAR(16) NOT NULL,
    player2_name VARCHAR(16) NULL,
    player1_score INT NOT NULL DEFAULT 0,
    player2_score INT NOT NULL DEFAULT 0,
    rounds_played INT UNSIGNED NOT NULL DEFAULT 0,
    rounds JSON NOT NULL,
    game_state VARCHAR(16) NOT NULL,
    finish_reason VARCHAR(16) NULL,
    winner_name VARCHAR(16) NULL,
    created_at DATETIME NOT NULL,
    finished_at DATETIME NULL
)
"""


class GamesRepository:
    def __init__(self, db: MySQLConnectionManager):
        self.db = db
        self.qm = QueryManager("games")

    async def ensure_schema(self):
        await self.db.execute_query(CREATE_GAMES_TABLE)

    async def archive_game(self, game: ArchivedGame) -> int:
        """Insert a terminated game and return its row ID."""
        try:
            data = game.model_dump(exclude={"id"})
            data["rounds"] = json.dumps(data["rounds"], default=str)
            for field in ("created_at", "finished_at"):
                if data[field] is not None:
                    data[field] = data[field].replace(tzinfo=None)
            query, params = self.qm.insert(data)
            row_id = await self.db.execute_query(query, params)
            logger.info(f"Archived game {game.session_id} with ID: {row_id}")
            return row_id
        except Exception as e:
            logger.error(f"Game archive error for {game.session_id}: {e}")
            raise

    async def get_archived_game(self, session_id: str) -> Optional[ArchivedGame]:
        """Fetch an archived game by its session ID."""
        try:
            query, params = self.qm.select_one({"session_id": session_id})
            row = await self.db.execute_query(query, params, fetch="one")
            if not row:
                return None
            if isinstance(row.get("rounds"), str):
                row["rounds"] = json.loads(row["rounds"])
            return ArchivedGame(**row)
        except Exception as e:
            logger.error(f"DB error get_archived_game {session_id}: {e}")
            raise
