import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import uuid4

from redblue.core.errors import (
    GameAuthError,
    GameFullError,
    GameNotFoundError,
    GameStateError,
    GameValidationError,
    SessionExpiredError,
)
from redblue.core.security import generate_token
from redblue.models.game_session import (
    GameSession,
    GameState,
    PlayerInfo,
    PlayerRole,
    Visibility,
    utcnow,
)
from redblue.models.ws_models import LobbyActiveEvent, LobbyClosedEvent
from .broadcaster import Broadcaster
from .presence import PresenceMonitor
from .round_resolver import RoundResolver
from .session_store import SessionStore
from .timers import TimerRegistry

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 16


def validate_player_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise GameValidationError(
            f"Player name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
        )
    return name


class LobbyManager:
    def __init__(
        self,
        store: SessionStore,
        timers: TimerRegistry,
        broadcaster: Broadcaster,
        resolver: RoundResolver,
        presence: PresenceMonitor,
        lobby_ttl_minutes: float = 10,
        finished_retention_minutes: float = 60,
    ):
        self.store = store
        self.timers = timers
        self.broadcaster = broadcaster
        self.resolver = resolver
        self.presence = presence
        self.lobby_ttl = timedelta(minutes=lobby_ttl_minutes)
        self.finished_retention = timedelta(minutes=finished_retention_minutes)

    def _require_session(self, session_id: str) -> GameSession:
        session = self.store.get(session_id)
        if session is None:
            raise GameNotFoundError("Game not found")
        return session

    def is_lobby_expired(self, session: GameSession) -> bool:
        return (
            session.game_state == GameState.waiting
            and utcnow() - session.created_at > self.lobby_ttl
        )

    def is_retention_over(self, session: GameSession) -> bool:
        ended_at = session.finished_at or session.created_at
        return session.is_terminal() and utcnow() - ended_at > self.finished_retention

    async def create_game(
        self, player1_name: str, visibility: Visibility = Visibility.private
    ) -> Dict[str, Any]:
        name = validate_player_name(player1_name)
        session = GameSession(
            id=str(uuid4()),
            code=self.store.generate_code(),
            visibility=Visibility(visibility),
            player1=PlayerInfo(name=name, role=PlayerRole.player1, token=generate_token()),
        )
        await self.store.add(session)

        logger.info(
            f"Created {session.visibility} game {session.id} ({session.code}) for {name}"
        )
        return {
            "game_id": session.id,
            "code": session.code,
            "role": PlayerRole.player1.value,
            "token": session.player1.token,
        }

    async def join_game(self, player_name: str, code: str) -> Dict[str, Any]:
        if not code or not code.strip():
            raise GameValidationError("Game code is required")
        name = validate_player_name(player_name)

        session = self.store.get_by_code(code)
        if session is None:
            raise GameNotFoundError("Game not found")

        async with self.store.get_lock(session.id):
            session = self._require_session(session.id)
            if session.is_full():
                raise GameFullError("Game is already full")
            if session.game_state != GameState.waiting:
                raise GameStateError("Game is not waiting for players")
            if self.is_lobby_expired(session):
                raise SessionExpiredError("Game lobby has expired")
            if name.lower() == session.player1.name.lower():
                raise GameValidationError("Player name is already taken in this game")

            session.player2 = PlayerInfo(
                name=name, role=PlayerRole.player2, token=generate_token()
            )
            session.transition(GameState.active)
            await self.store.save(session)
            logger.info(f"{name} joined game {session.id} ({session.code})")

            await self.broadcaster.broadcast(
                session.id,
                LobbyActiveEvent(
                    game_id=session.id,
                    game_state=session.game_state,
                    player1_name=session.player1.name,
                    player2_name=name,
                    current_round=session.current_round + 1,
                    message=f"{name} joined the game.",
                ),
            )
            await self.resolver.open_round(session)
            if not session.player1.connected:
                await self.presence.pause_game(session, session.player1)

            return {
                "game_id": session.id,
                "code": session.code,
                "role": PlayerRole.player2.value,
                "token": session.player2.token,
            }

    def list_public_games(self) -> List[Dict[str, Any]]:
        """Public lobbies still waiting for an opponent, oldest first"""
        lobbies = [
            s
            for s in self.store.all()
            if s.visibility == Visibility.public
            and s.game_state == GameState.waiting
            and not s.is_full()
            and not self.is_lobby_expired(s)
        ]
        lobbies.sort(key=lambda s: s.created_at)
        return [
            {
                "code": s.code,
                "player1_name": s.player1.name,
                "created_at": s.created_at.isoformat(),
            }
            for s in lobbies
        ]

    def _require_host_lobby(self, session: GameSession, role: PlayerRole, action: str):
        if role != PlayerRole.player1:
            raise GameAuthError(f"Only the host can {action}")
        if session.game_state != GameState.waiting:
            raise GameStateError(f"Can only {action} while waiting for an opponent")

    async def change_visibility(self, session_id: str, role: PlayerRole) -> Visibility:
        self._require_session(session_id)
        async with self.store.get_lock(session_id):
            session = self._require_session(session_id)
            self._require_host_lobby(session, role, "change visibility")

            session.visibility = (
                Visibility.private.value
                if session.visibility == Visibility.public
                else Visibility.public.value
            )
            await self.store.save(session)
            logger.info(f"Game {session_id} is now {session.visibility}")
            return Visibility(session.visibility)

    async def delete_lobby(self, session_id: str, role: PlayerRole):
        self._require_session(session_id)
        async with self.store.get_lock(session_id):
            session = self._require_session(session_id)
            self._require_host_lobby(session, role, "delete the lobby")
            await self._remove_session(session, "The host closed the lobby")

    async def _remove_session(self, session: GameSession, reason: str):
        self.timers.cancel_all(session.id)
        await self.store.remove(session.id)
        await self.broadcaster.close_session(
            session.id, LobbyClosedEvent(game_id=session.id, message=reason)
        )

    async def cleanup_stale_sessions(self) -> Dict[str, int]:
        """Drop lobbies past their TTL and terminated games past retention"""
        lobbies_removed = 0
        games_removed = 0

        for session in self.store.all():
            expired_lobby = self.is_lobby_expired(session)
            if not expired_lobby and not self.is_retention_over(session):
                continue

            async with self.store.get_lock(session.id):
                current = self.store.get(session.id)
                if current is None:
                    continue
                if self.is_lobby_expired(current):
                    await self._remove_session(current, "The lobby has expired")
                    lobbies_removed += 1
                elif self.is_retention_over(current):
                    await self._remove_session(current, "The game has been archived")
                    games_removed += 1

        if lobbies_removed or games_removed:
            logger.info(
                f"Cleanup removed {lobbies_removed} stale lobbies and {games_removed} finished games"
            )
        return {"lobbies_removed": lobbies_removed, "games_removed": games_removed}
