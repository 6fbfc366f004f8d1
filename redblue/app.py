from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging

from redblue.core.api_tags import APITags
from redblue.core.env import Environment, get_env, initialize_environment, reset_environment
from redblue.database.mysql_connection_manager import (
    MySQLConnectionManager,
    get_mysql_or_none,
    startup_mysql,
    shutdown_mysql,
)
from redblue.database.redis_service import (
    RedisService,
    get_redis_or_none,
    startup_redis,
    shutdown_redis,
)
from redblue.game.after_game_handlers import ArchiveGameAfterGameHandler
from redblue.game.game_manager import (
    GameManager,
    get_game_manager,
    startup_game_manager,
    shutdown_game_manager,
)
from redblue.repositories.games_repository import GamesRepository
from redblue.workers.session_cleanup_worker import (
    startup_session_cleanup_worker,
    shutdown_session_cleanup_worker,
)
from redblue.routes import admin_router, game_router, ws_router

logger = logging.getLogger(__name__)


async def _start_redis(env: Environment) -> Optional[RedisService]:
    if not env.redis_enabled:
        logger.info("Redis mirror disabled (REDIS_HOST not set)")
        return None
    try:
        await startup_redis(env)
        return get_redis_or_none()
    except Exception as e:
        logger.error(f"Redis unavailable, continuing without session mirror: {e}")
        await shutdown_redis()
        return None


async def _start_archive(env: Environment, game_manager: GameManager):
    if not env.mysql_enabled:
        logger.info("MySQL archive disabled (DB_HOST not set)")
        return
    try:
        await startup_mysql(env)
        repository = GamesRepository(get_mysql_or_none())
        await repository.ensure_schema()
        game_manager.register_after_game_handler(ArchiveGameAfterGameHandler(repository))
    except Exception as e:
        logger.error(f"MySQL unavailable, continuing without game archive: {e}")
        await shutdown_mysql()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan events for startup and shutdown."""
    # Startup
    try:
        env = initialize_environment()
        logging.basicConfig(level=env.log_level)
        logger.info("Environment initialized successfully")
        logger.info(str(env))

        redis_service = await _start_redis(env)
        game_manager = await startup_game_manager(env, redis_service)
        await _start_archive(env, game_manager)

        await startup_session_cleanup_worker(
            game_manager, cleanup_interval_minutes=env.cleanup_interval_minutes
        )
    except ValueError as e:
        logger.error(f"Environment initialization failed: {e}")
        raise
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    try:
        await shutdown_session_cleanup_worker()
        logger.info("Session cleanup worker stopped")

        await shutdown_game_manager()

        await shutdown_mysql()
        await shutdown_redis()

        reset_environment()
        logger.info("Environment reset")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


def create_app() -> FastAPI:
    app = FastAPI(
        title="RED/BLUE",
        description="Authoritative real-time game server for the two-player RED/BLUE game",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_env().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(game_router)
    app.include_router(admin_router)
    app.include_router(ws_router)

    @app.get("/health", tags=[APITags.SYSTEM])
    async def health_check(
        env: Environment = Depends(get_env),
        game_manager: GameManager = Depends(get_game_manager),
    ) -> Dict[str, Any]:
        """Liveness plus the state of the optional Redis mirror and MySQL archive."""
        redis_service = get_redis_or_none()
        mysql_manager: Optional[MySQLConnectionManager] = get_mysql_or_none()

        if redis_service is None:
            redis_status = "disabled"
        else:
            redis_status = "connected" if await redis_service.health_check() else "unavailable"

        if mysql_manager is None:
            mysql_status = "disabled"
        else:
            mysql_status = "connected" if await mysql_manager.health_check() else "unavailable"

        return {
            "status": "healthy",
            "redis": redis_status,
            "database": mysql_status,
            "sessions": len(game_manager.store.sessions),
            "config_valid": env.validate(),
        }

    return app


app = create_app()
