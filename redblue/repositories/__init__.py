from .games_repository import GamesRepository
