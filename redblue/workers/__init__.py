from .session_cleanup_worker import (
    SessionCleanupWorker,
    get_session_cleanup_worker,
    startup_session_cleanup_worker,
    shutdown_session_cleanup_worker,
)
