import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

TimerKey = Tuple[str, str]  # (session_id, kind)

ROUND_TIMER = "round"
PAUSE_TIMER = "pause"


class TimerRegistry:
    """Keyed one-shot asyncio timers, at most one per (session, kind)"""

    def __init__(self):
        self._timers: Dict[TimerKey, asyncio.Task] = {}

    def schedule(
        self,
        session_id: str,
        kind: str,
        delay_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> asyncio.Task:
        """Arm a timer, replacing any timer already held under the same key"""
        self.cancel(session_id, kind)
        key = (session_id, kind)
        task = asyncio.create_task(self._run(key, max(delay_seconds, 0), callback))
        self._timers[key] = task
        logger.debug(f"Armed {kind} timer for session {session_id} ({delay_seconds:.2f}s)")
        return task

    async def _run(
        self,
        key: TimerKey,
        delay_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ):
        try:
            await asyncio.sleep(delay_seconds)
        except asyncio.CancelledError:
            logger.debug(f"Aborted {key[1]} timer for session {key[0]}")
            raise

        # Fired; the key no longer refers to a pending timer
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]

        logger.info(f"{key[1].capitalize()} timer fired for session {key[0]}")
        try:
            await callback()
        except Exception as e:
            logger.error(f"Error in {key[1]} timer callback for session {key[0]}: {e}")

    def cancel(self, session_id: str, kind: str) -> bool:
        task = self._timers.pop((session_id, kind), None)
        if task is None:
            return False
        if task is asyncio.current_task() or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self, session_id: str):
        for key in [k for k in self._timers if k[0] == session_id]:
            self.cancel(*key)

    def get(self, session_id: str, kind: str) -> Optional[asyncio.Task]:
        return self._timers.get((session_id, kind))

    def is_armed(self, session_id: str, kind: str) -> bool:
        task = self._timers.get((session_id, kind))
        return task is not None and not task.done()

    def shutdown(self):
        for task in self._timers.values():
            if not task.done() and task is not asyncio.current_task():
                task.cancel()
        self._timers.clear()
