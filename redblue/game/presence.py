import logging
from datetime import datetime, timedelta
from functools import partial
from typing import Optional

from redblue.core.errors import GameNotFoundError
from redblue.models.game_session import (
    ConnectionStatus,
    FinishReason,
    GameSession,
    GameState,
    PlayerInfo,
    PlayerRole,
    utcnow,
)
from redblue.models.ws_models import MessageType, PresenceEvent
from .broadcaster import Broadcaster
from .round_resolver import RoundResolver
from .session_store import SessionStore
from .timers import PAUSE_TIMER, ROUND_TIMER, TimerRegistry

logger = logging.getLogger(__name__)


class PresenceMonitor:
    """Tracks player connectivity, pausing active games and abandoning stale pauses"""

    def __init__(
        self,
        store: SessionStore,
        timers: TimerRegistry,
        broadcaster: Broadcaster,
        resolver: RoundResolver,
        pause_timeout_minutes: float = 10,
    ):
        self.store = store
        self.timers = timers
        self.broadcaster = broadcaster
        self.resolver = resolver
        self.pause_timeout = timedelta(minutes=pause_timeout_minutes)

    def _require_session(self, session_id: str) -> GameSession:
        session = self.store.get(session_id)
        if session is None:
            raise GameNotFoundError("Game not found")
        return session

    def pause_deadline(self, session: GameSession) -> Optional[datetime]:
        """Deadline anchored on the earliest disconnect still outstanding"""
        now = utcnow()
        stamps = [p.disconnected_at or now for p in session.disconnected_players()]
        if not stamps:
            return None
        return min(stamps) + self.pause_timeout

    async def handle_disconnect(self, session_id: str, role: PlayerRole) -> bool:
        """Mark a player as gone; returns False when nothing changed"""
        self._require_session(session_id)
        async with self.store.get_lock(session_id):
            session = self._require_session(session_id)
            player = session.get_player_by_role(role)
            if player is None or not player.connected:
                return False

            player.connection = ConnectionStatus.disconnected.value

            if session.game_state == GameState.active:
                await self.pause_game(session, player)
            else:
                if not session.is_terminal():
                    player.disconnected_at = utcnow()
                await self.store.save(session)
                logger.info(
                    f"Session {session_id}: {player.name} disconnected while {session.game_state}"
                )
            return True

    async def pause_game(self, session: GameSession, player: PlayerInfo):
        """
        Pause an active session because `player` is away.

        Caller holds the session lock. The absent player's pause window
        starts now, even if they were already flagged away in the lobby.
        """
        player.connection = ConnectionStatus.disconnected.value
        player.disconnected_at = utcnow()
        self.timers.cancel(session.id, ROUND_TIMER)
        session.transition(GameState.pause)
        deadline = self.arm_pause_timer(session)
        await self.store.save(session)
        logger.info(
            f"Session {session.id} paused: {player.name} disconnected, "
            f"abandoning at {deadline}"
        )
        await self.broadcaster.broadcast(
            session.id,
            PresenceEvent(
                type=MessageType.DISCONNECT,
                game_id=session.id,
                player_name=player.name,
                role=player.role,
                game_state=session.game_state,
                disconnected_at=player.disconnected_at,
                pause_deadline=deadline,
                message=f"{player.name} disconnected. The game is paused.",
            ),
        )

    async def handle_reconnect(self, session_id: str, role: PlayerRole) -> bool:
        """Mark a player as back; returns False when the player was not away"""
        self._require_session(session_id)
        async with self.store.get_lock(session_id):
            session = self._require_session(session_id)
            player = session.get_player_by_role(role)
            if player is None or player.connected:
                return False

            player.connection = ConnectionStatus.connected.value
            player.disconnected_at = None

            if session.game_state != GameState.pause:
                await self.store.save(session)
                logger.info(f"Session {session_id}: {player.name} reconnected")
                return True

            deadline = None
            if session.disconnected_players():
                deadline = self.arm_pause_timer(session)
                await self.store.save(session)
                logger.info(
                    f"Session {session_id}: {player.name} reconnected, still paused until {deadline}"
                )
            else:
                self.timers.cancel(session_id, PAUSE_TIMER)
                session.transition(GameState.active)
                current = session.current_round_record()
                if current is not None and not current.resolved:
                    current.created_at = utcnow()
                await self.store.save(session)
                if current is not None and not current.resolved:
                    self.resolver.arm_round_timer(session, current)
                logger.info(f"Session {session_id} resumed: {player.name} reconnected")

            await self.broadcaster.broadcast(
                session_id,
                PresenceEvent(
                    type=MessageType.RECONNECT,
                    game_id=session_id,
                    player_name=player.name,
                    role=player.role,
                    game_state=session.game_state,
                    pause_deadline=deadline,
                    message=f"{player.name} reconnected.",
                ),
            )
            return True

    def arm_pause_timer(self, session: GameSession) -> Optional[datetime]:
        # Pin the window of anyone flagged away without a timestamp
        for player in session.disconnected_players():
            if player.disconnected_at is None:
                player.disconnected_at = utcnow()
        deadline = self.pause_deadline(session)
        if deadline is None:
            return None
        self.timers.schedule(
            session.id,
            PAUSE_TIMER,
            (deadline - utcnow()).total_seconds(),
            partial(self._on_pause_timeout, session.id),
        )
        return deadline

    async def _on_pause_timeout(self, session_id: str):
        if self.store.get(session_id) is None:
            return
        async with self.store.get_lock(session_id):
            session = self.store.get(session_id)
            if session is None or session.game_state != GameState.pause:
                logger.info(f"Ignoring stale pause timer for session {session_id}")
                return

            deadline = self.pause_deadline(session)
            if deadline is None:
                return
            if utcnow() < deadline:
                self.arm_pause_timer(session)
                return

            names = ", ".join(p.name for p in session.disconnected_players())
            await self.resolver.finish(
                session,
                GameState.abandoned,
                FinishReason.abandon,
                f"Game abandoned: {names} did not reconnect in time",
            )
