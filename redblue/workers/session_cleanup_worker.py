# redblue/workers/session_cleanup_worker.py

import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from redblue.game.game_manager import GameManager

logger = logging.getLogger(__name__)


class SessionCleanupWorker:
    """
    Background worker that periodically drops lobbies past their TTL and
    finished or abandoned games past their retention window.
    Uses APScheduler to run the sweep at regular intervals.
    """

    def __init__(self, game_manager: GameManager, cleanup_interval_minutes: float = 5):
        """
        Args:
            game_manager: Game manager owning the sessions to sweep
            cleanup_interval_minutes: How often to run the sweep (default: 5 minutes)
        """
        self.game_manager = game_manager
        self.cleanup_interval_minutes = cleanup_interval_minutes
        self.scheduler: Optional[AsyncIOScheduler] = None

    async def cleanup_stale_sessions(self):
        """Called periodically by the scheduler; errors are logged, never raised."""
        try:
            logger.info("Starting session cleanup job")
            counts = await self.game_manager.cleanup_stale_sessions()
            logger.info(
                f"Session cleanup job completed. Removed {counts['lobbies_removed']} "
                f"lobbies and {counts['games_removed']} finished games."
            )
        except Exception as e:
            logger.error(f"Error during session cleanup job: {e}")

    def start(self):
        """Start the background scheduler. Call during application startup."""
        if self.scheduler is not None:
            logger.warning("Session cleanup worker is already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.cleanup_stale_sessions,
            trigger=IntervalTrigger(minutes=self.cleanup_interval_minutes),
            id="session_cleanup",
            name="Cleanup stale sessions",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            f"Session cleanup worker started. "
            f"Running every {self.cleanup_interval_minutes} minutes."
        )

    def shutdown(self):
        """Shutdown the background scheduler. Call during application shutdown."""
        if self.scheduler is None:
            logger.warning("Session cleanup worker is not running")
            return

        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info("Session cleanup worker stopped")


# Global instance
_session_cleanup_worker: Optional[SessionCleanupWorker] = None


def get_session_cleanup_worker() -> Optional[SessionCleanupWorker]:
    return _session_cleanup_worker


async def startup_session_cleanup_worker(
    game_manager: GameManager, cleanup_interval_minutes: float = 5
):
    """
    Initialize and start the session cleanup worker.
    An interval of 0 leaves the worker disabled.
    """
    global _session_cleanup_worker

    if _session_cleanup_worker is not None:
        logger.warning("Session cleanup worker already initialized")
        return

    if cleanup_interval_minutes <= 0:
        logger.info("Session cleanup worker disabled")
        return

    _session_cleanup_worker = SessionCleanupWorker(
        game_manager=game_manager,
        cleanup_interval_minutes=cleanup_interval_minutes,
    )
    _session_cleanup_worker.start()
    logger.info("Session cleanup worker initialized and started")


async def shutdown_session_cleanup_worker():
    """Shutdown the session cleanup worker."""
    global _session_cleanup_worker

    if _session_cleanup_worker is None:
        return

    _session_cleanup_worker.shutdown()
    _session_cleanup_worker = None
