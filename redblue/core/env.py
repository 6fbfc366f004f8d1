import os
from typing import List, Optional
from dotenv import load_dotenv


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, default))


class Environment:
    def __init__(self, dotenv_path=".env"):
        load_dotenv(dotenv_path)

        # Game timing (seconds / minutes, fractions allowed)
        self.round_time_limit_seconds = _float_env("ROUND_TIME_LIMIT_SECONDS", 60)
        self.lobby_ttl_minutes = _float_env("LOBBY_TTL_MINUTES", 10)
        self.pause_timeout_minutes = _float_env("PAUSE_TIMEOUT_MINUTES", 10)
        self.finished_retention_minutes = _float_env("FINISHED_RETENTION_MINUTES", 60)
        self.cleanup_interval_minutes = _float_env("CLEANUP_INTERVAL_MINUTES", 5)

        # Admin config
        self.admin_password = os.getenv("ADMIN_PASSWORD")
        self.admin_token_ttl_minutes = _float_env("ADMIN_TOKEN_TTL_MINUTES", 720)

        # Server config
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", 8000))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.cors_origins: List[str] = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
            ).split(",")
            if origin.strip()
        ]

        # Redis config (session mirror, enabled when REDIS_HOST is set)
        self.redis_host = os.getenv("REDIS_HOST")
        self.redis_port = int(os.getenv("REDIS_PORT", 6379))
        self.redis_db = int(os.getenv("REDIS_DB", 0))
        self.redis_password = os.getenv("REDIS_PASSWORD")

        # MySQL config (finished-game archive, enabled when DB_HOST is set)
        self.db_host = os.getenv("DB_HOST")
        self.db_port = int(os.getenv("DB_PORT", 3306))
        self.db_user = os.getenv("DB_USER")
        self.db_password = os.getenv("DB_PASSWORD")
        self.db_name = os.getenv("DB_NAME")

    def __str__(self):
        return (
            f"Game -> Round limit: {self.round_time_limit_seconds}s, "
            f"Lobby TTL: {self.lobby_ttl_minutes}m, Pause timeout: {self.pause_timeout_minutes}m\n"
            f"Redis -> Host: {self.redis_host}, Port: {self.redis_port}, DB: {self.redis_db}\n"
            f"MySQL -> Host: {self.db_host}, Port: {self.db_port}, User: {self.db_user}, "
            f"DB: {self.db_name}\n"
            f"Admin -> Login {'enabled' if self.admin_password else 'disabled'}"
        )

    @property
    def redis_enabled(self) -> bool:
        return bool(self.redis_host)

    @property
    def mysql_enabled(self) -> bool:
        return bool(self.db_host)

    def get_mysql_config(self) -> dict:
        """Get MySQL configuration as a dictionary."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "user": self.db_user,
            "db": self.db_name,
        }

    def get_redis_config(self) -> dict:
        """Get Redis configuration as a dictionary."""
        return {
            "host": self.redis_host,
            "port": self.redis_port,
            "db": self.redis_db,
        }

    def validate(self) -> bool:
        """Validate that the configured values are usable."""
        if self.round_time_limit_seconds <= 0 or self.pause_timeout_minutes <= 0:
            return False
        if self.lobby_ttl_minutes <= 0 or self.cleanup_interval_minutes < 0:
            return False
        if self.mysql_enabled:
            return all(
                var is not None
                for var in [self.db_user, self.db_password, self.db_name]
            )
        return True


# Global environment instance
_global_env: Optional[Environment] = None


def initialize_environment(dotenv_path: str = ".env") -> Environment:
    """
    Initialize the global environment instance.

    Args:
        dotenv_path: Path to the .env file

    Returns:
        Environment: The initialized environment instance

    Raises:
        ValueError: If the configuration is invalid
    """
    global _global_env

    _global_env = Environment(dotenv_path)

    if not _global_env.validate():
        raise ValueError("Invalid environment configuration. Please check your .env file.")

    return _global_env


def get_environment_or_default(dotenv_path: str = ".env") -> Environment:
    """
    Get the global environment instance or create a default one.

    Args:
        dotenv_path: Path to the .env file (used only if not already initialized)

    Returns:
        Environment: The environment instance
    """
    global _global_env

    if _global_env is None:
        _global_env = Environment(dotenv_path)

    return _global_env


def get_env() -> Environment:
    """Dependency injection alias with auto-initialization."""
    return get_environment_or_default()


def reset_environment():
    """
    Reset the global environment instance.
    Useful for testing or reloading configuration.
    """
    global _global_env
    _global_env = None
