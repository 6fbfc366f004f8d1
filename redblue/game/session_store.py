import asyncio
import logging
import random
import string
from typing import Dict, List, Optional, Tuple

from redblue.database.redis_service import RedisService
from redblue.models.game_session import GameSession, GameState

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits


class SessionStore:
    """
    Authoritative in-memory map of sessions.

    When a RedisService is given, every save is mirrored to Redis and
    `restore` reloads the mirror on startup.
    """

    def __init__(self, redis_service: Optional[RedisService] = None):
        self.redis = redis_service
        self.sessions: Dict[str, GameSession] = {}  # session_id -> GameSession
        self._codes: Dict[str, str] = {}  # CODE -> session_id
        self._session_locks: Dict[str, asyncio.Lock] = {}  # session_id -> asyncio.Lock

        # Redis keys
        self.SESSION_KEY_PREFIX = "redblue:session:"
        self.SESSIONS_KEY = "redblue:sessions"

    def get_lock(self, session_id: str) -> asyncio.Lock:
        """Get or create a lock for a specific session"""
        if session_id not in self._session_locks:
            self._session_locks[session_id] = asyncio.Lock()
        return self._session_locks[session_id]

    def generate_code(self) -> str:
        while True:
            code = "".join(random.choices(CODE_ALPHABET, k=CODE_LENGTH))
            if code not in self._codes:
                return code

    def get(self, session_id: str) -> Optional[GameSession]:
        return self.sessions.get(session_id)

    def get_by_code(self, code: str) -> Optional[GameSession]:
        session_id = self._codes.get(code.strip().upper())
        return self.sessions.get(session_id) if session_id else None

    def all(self) -> List[GameSession]:
        return list(self.sessions.values())

    async def add(self, session: GameSession):
        session.code = session.code.upper()
        if session.code in self._codes:
            raise ValueError(f"Join code {session.code} is already in use")
        self.sessions[session.id] = session
        self._codes[session.code] = session.id
        await self.save(session)

    async def remove(self, session_id: str) -> Optional[GameSession]:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return None
        self._codes.pop(session.code, None)
        self._session_locks.pop(session_id, None)

        if self.redis:
            await self.redis.delete(f"{self.SESSION_KEY_PREFIX}{session_id}")
            await self.redis.remove_from_set(self.SESSIONS_KEY, session_id)
        logger.info(f"Removed session {session_id} ({session.code})")
        return session

    async def save(self, session: GameSession):
        """Write-through to the Redis mirror; a no-op without Redis"""
        if not self.redis:
            return
        try:
            await self.redis.set_json(
                f"{self.SESSION_KEY_PREFIX}{session.id}",
                session.model_dump(mode="json"),
            )
            await self.redis.add_to_set(self.SESSIONS_KEY, session.id)
        except Exception as e:
            logger.error(f"Failed to save session {session.id} to Redis: {e}")

    async def restore(self) -> List[GameSession]:
        """Load every mirrored session back into memory"""
        if not self.redis:
            return []

        restored = []
        try:
            session_ids = await self.redis.get_set(self.SESSIONS_KEY)
            for session_id in session_ids:
                data = await self.redis.get_json(f"{self.SESSION_KEY_PREFIX}{session_id}")
                if not data:
                    await self.redis.remove_from_set(self.SESSIONS_KEY, session_id)
                    continue
                try:
                    session = GameSession.model_validate(data)
                except Exception as e:
                    logger.error(f"Discarding unreadable session {session_id}: {e}")
                    continue
                self.sessions[session.id] = session
                self._codes[session.code.upper()] = session.id
                restored.append(session)
                logger.info(f"Restored session {session.id} ({session.game_state})")
        except Exception as e:
            logger.error(f"Failed to restore sessions from Redis: {e}")
        return restored

    def list_sessions(
        self,
        game_state: Optional[GameState] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[GameSession], int]:
        """Newest first, optionally filtered by state; returns (page, total matches)"""
        matches = [
            s
            for s in self.sessions.values()
            if game_state is None or s.game_state == GameState(game_state)
        ]
        matches.sort(key=lambda s: s.created_at, reverse=True)
        start = (max(page, 1) - 1) * page_size
        return matches[start : start + page_size], len(matches)
