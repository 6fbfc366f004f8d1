import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from redblue.core.env import Environment
from redblue.core.errors import GameAuthError, GameNotFoundError, GameValidationError
from redblue.core.security import AdminAuthenticator, tokens_match
from redblue.database.redis_service import RedisService
from redblue.models.game_session import (
    AfterGameHandler,
    Choice,
    GameSession,
    GameState,
    PlayerRole,
    Round,
    Visibility,
)
from .broadcaster import Broadcaster
from .lobby import LobbyManager
from .presence import PresenceMonitor
from .round_resolver import RoundResolver
from .session_store import SessionStore
from .timers import TimerRegistry

logger = logging.getLogger(__name__)


class GameManager:
    """Entry point for routes: authenticates callers and delegates to the engine parts"""

    def __init__(
        self,
        env: Environment,
        redis_service: Optional[RedisService] = None,
        broadcaster: Optional[Broadcaster] = None,
    ):
        self.env = env
        self.store = SessionStore(redis_service)
        self.timers = TimerRegistry()
        self.broadcaster = broadcaster or Broadcaster()
        self.admin = AdminAuthenticator(env.admin_password, env.admin_token_ttl_minutes)

        self._after_game_handlers: List[AfterGameHandler] = []
        self._after_game_tasks: Set[asyncio.Task] = set()

        self.resolver = RoundResolver(
            self.store,
            self.timers,
            self.broadcaster,
            round_time_limit_seconds=env.round_time_limit_seconds,
            on_game_over=self._schedule_after_game_handlers,
        )
        self.presence = PresenceMonitor(
            self.store,
            self.timers,
            self.broadcaster,
            self.resolver,
            pause_timeout_minutes=env.pause_timeout_minutes,
        )
        self.lobby = LobbyManager(
            self.store,
            self.timers,
            self.broadcaster,
            self.resolver,
            self.presence,
            lobby_ttl_minutes=env.lobby_ttl_minutes,
            finished_retention_minutes=env.finished_retention_minutes,
        )

    async def startup(self):
        """Initialize the game manager"""
        logger.info("Starting Game Manager...")
        await self._restore_active_games()
        logger.info("Game Manager started successfully")

    async def shutdown(self):
        """Cleanup game manager"""
        logger.info("Shutting down Game Manager...")
        self.timers.shutdown()
        await self.broadcaster.shutdown()

        for task in list(self._after_game_tasks):
            task.cancel()
        if self._after_game_tasks:
            await asyncio.gather(*self._after_game_tasks, return_exceptions=True)
        logger.info("Game Manager shutdown complete")

    async def _restore_active_games(self):
        """Reload mirrored sessions and re-arm their timers from stored timestamps"""
        for session in await self.store.restore():
            if session.game_state == GameState.active:
                current = session.current_round_record()
                if current is not None and not current.resolved:
                    self.resolver.arm_round_timer(session, current)
            elif session.game_state == GameState.pause:
                self.presence.arm_pause_timer(session)

    # After-game handlers

    def register_after_game_handler(self, handler: AfterGameHandler):
        self._after_game_handlers.append(handler)
        logger.info(f"Registered after-game handler {type(handler).__name__}")

    def _schedule_after_game_handlers(self, game: GameSession):
        if not self._after_game_handlers:
            return
        snapshot = game.model_copy(deep=True)
        task = asyncio.create_task(self._run_after_game_handlers(snapshot))
        self._after_game_tasks.add(task)
        task.add_done_callback(self._after_game_tasks.discard)

    async def _run_after_game_handlers(self, game: GameSession):
        for handler in self._after_game_handlers:
            try:
                await handler(game)
            except Exception as e:
                logger.error(
                    f"After-game handler {type(handler).__name__} failed for {game.id}: {e}"
                )

    async def wait_for_after_game_handlers(self):
        if self._after_game_tasks:
            await asyncio.gather(*list(self._after_game_tasks), return_exceptions=True)

    # Authentication

    def get_game_session(self, session_id: str) -> GameSession:
        session = self.store.get(session_id)
        if session is None:
            raise GameNotFoundError("Game not found")
        return session

    def resolve_role(self, session: GameSession, token: Optional[str]) -> Optional[PlayerRole]:
        for player in session.players():
            if tokens_match(player.token, token):
                return PlayerRole(player.role)
        return None

    def authenticate_player(
        self,
        session_id: str,
        token: Optional[str],
        player_name: Optional[str] = None,
    ) -> Tuple[GameSession, PlayerRole]:
        session = self.get_game_session(session_id)
        role = self.resolve_role(session, token)
        if role is None:
            raise GameAuthError("Invalid token")
        if player_name is not None:
            player = session.get_player_by_role(role)
            if player_name.strip() != player.name:
                raise GameAuthError("Player name does not match token")
        return session, role

    # Gameplay

    async def create_game(
        self, player1_name: str, visibility: Visibility = Visibility.private
    ) -> Dict[str, Any]:
        return await self.lobby.create_game(player1_name, visibility)

    async def join_game(self, player_name: str, code: str) -> Dict[str, Any]:
        return await self.lobby.join_game(player_name, code)

    async def get_snapshot(self, session_id: str, token: Optional[str]) -> Dict[str, Any]:
        """Snapshot for a player or admin; a player request also counts as a reconnect"""
        session = self.get_game_session(session_id)
        role = self.resolve_role(session, token)
        if role is None:
            if not self.admin.is_valid(token):
                raise GameAuthError("Invalid token")
        else:
            await self.presence.handle_reconnect(session_id, role)
            session = self.get_game_session(session_id)

        return session.to_snapshot(
            viewer=role, round_time_limit_seconds=self.env.round_time_limit_seconds
        )

    async def submit_choice(
        self,
        session_id: str,
        round_number: int,
        player_name: str,
        choice: Choice,
        token: str,
    ) -> Round:
        _, role = self.authenticate_player(session_id, token, player_name)
        return await self.resolver.submit_choice(session_id, role, round_number, choice)

    async def abandon(self, session_id: str, player_name: str, token: str):
        _, role = self.authenticate_player(session_id, token, player_name)
        await self.resolver.surrender(session_id, role)

    async def change_visibility(self, session_id: str, token: Optional[str]) -> Visibility:
        _, role = self.authenticate_player(session_id, token)
        return await self.lobby.change_visibility(session_id, role)

    async def delete_lobby(self, session_id: str, token: Optional[str]):
        _, role = self.authenticate_player(session_id, token)
        await self.lobby.delete_lobby(session_id, role)

    def list_public_games(self) -> List[Dict[str, Any]]:
        return self.lobby.list_public_games()

    async def handle_disconnect(self, session_id: str, role: PlayerRole) -> bool:
        return await self.presence.handle_disconnect(session_id, role)

    async def handle_reconnect(self, session_id: str, role: PlayerRole) -> bool:
        return await self.presence.handle_reconnect(session_id, role)

    async def cleanup_stale_sessions(self) -> Dict[str, int]:
        return await self.lobby.cleanup_stale_sessions()

    # Admin

    def admin_login(self, password: str) -> str:
        return self.admin.login(password)

    async def admin_cleanup(self, admin_token: str) -> Dict[str, int]:
        self.admin.require(admin_token)
        return await self.cleanup_stale_sessions()

    def list_games(
        self,
        admin_token: str,
        page: int = 1,
        page_size: int = 20,
        game_state: Optional[GameState] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        self.admin.require(admin_token)
        if page < 1 or page_size < 1:
            raise GameValidationError("Page and page size must be positive")
        sessions, total = self.store.list_sessions(game_state, page, page_size)
        return [s.to_snapshot() for s in sessions], total


_game_manager: Optional[GameManager] = None


def get_game_manager() -> GameManager:
    if _game_manager is None:
        raise RuntimeError("Game manager is not initialized")
    return _game_manager


async def startup_game_manager(
    env: Environment, redis_service: Optional[RedisService] = None
) -> GameManager:
    global _game_manager
    _game_manager = GameManager(env, redis_service)
    await _game_manager.startup()
    logger.info("Game Manager initialized")
    return _game_manager


async def shutdown_game_manager():
    global _game_manager
    if _game_manager:
        await _game_manager.shutdown()
        _game_manager = None
        logger.info("Game Manager shutdown complete")
