import logging

from redblue.models.archived_game import ArchivedGame
from redblue.models.game_session import AfterGameHandler, GameSession
from redblue.repositories.games_repository import GamesRepository

logger = logging.getLogger(__name__)


class ArchiveGameAfterGameHandler(AfterGameHandler):
    """
    Persists every finished or abandoned session into the `games` archive
    table so the record outlives in-memory retention.
    """

    def __init__(self, repository: GamesRepository):
        super().__init__()
        self.repository = repository

    async def handle(self, game: GameSession) -> None:
        if not game.is_terminal():
            return  # Only archive terminated games

        try:
            await self.repository.archive_game(ArchivedGame.from_session(game))
        except Exception as e:
            logger.error(f"Error archiving game session {game.id}: {e}")
            raise
