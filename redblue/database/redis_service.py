import asyncio
import json
import logging
from typing import Optional, Dict, Any, List
import redis.asyncio as aioredis
from fastapi import Depends

from redblue.core.env import Environment, get_env

logger = logging.getLogger(__name__)


class RedisService:
    def __init__(self, env: Environment):
        self.env = env
        self.redis: Optional[aioredis.Redis] = None
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> aioredis.Redis:
        """Establish connection to Redis."""
        if self.redis is None:
            async with self._connection_lock:
                if self.redis is None:  # Double-check locking
                    try:
                        self.redis = aioredis.Redis(
                            host=self.env.redis_host,
                            port=self.env.redis_port,
                            db=self.env.redis_db,
                            password=self.env.redis_password,
                            decode_responses=True,
                            socket_keepalive=True,
                            health_check_interval=30,
                        )
                        await self.redis.ping()
                        logger.info(
                            f"Connected to Redis at {self.env.redis_host}:{self.env.redis_port}"
                        )
                    except Exception as e:
                        self.redis = None
                        logger.error(f"Failed to connect to Redis: {e}")
                        raise
        return self.redis

    async def disconnect(self):
        """Close the Redis connection."""
        try:
            if self.redis:
                await self.redis.aclose()
                self.redis = None
                logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error during Redis disconnect: {e}")

    async def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            redis = await self.connect()
            await redis.ping()
            return True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def set_json(
        self, key: str, data: Dict[str, Any], expire_seconds: Optional[int] = None
    ) -> bool:
        """Store a dictionary as JSON in Redis."""
        try:
            redis = await self.connect()
            json_data = json.dumps(data, default=str)
            result = await redis.set(key, json_data, ex=expire_seconds)
            logger.debug(f"Stored JSON data for key {key}")
            return bool(result)
        except Exception as e:
            logger.error(f"Failed to store JSON data for key {key}: {e}")
            return False

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Retrieve and parse JSON data from Redis."""
        try:
            redis = await self.connect()
            data = await redis.get(key)
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            logger.error(f"Failed to retrieve JSON data for key {key}: {e}")
            return None

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys."""
        try:
            redis = await self.connect()
            return await redis.delete(*keys)
        except Exception as e:
            logger.error(f"Failed to delete keys {keys}: {e}")
            return 0

    # Set operations
    async def add_to_set(self, key: str, *items: str) -> int:
        """Add items to a Redis set."""
        try:
            redis = await self.connect()
            return await redis.sadd(key, *[str(item) for item in items])
        except Exception as e:
            logger.error(f"Failed to add items to set {key}: {e}")
            return 0

    async def remove_from_set(self, key: str, *items: str) -> int:
        """Remove items from a Redis set."""
        try:
            redis = await self.connect()
            return await redis.srem(key, *[str(item) for item in items])
        except Exception as e:
            logger.error(f"Failed to remove items from set {key}: {e}")
            return 0

    async def get_set(self, key: str) -> List[str]:
        """Get all members of a Redis set."""
        try:
            redis = await self.connect()
            return list(await redis.smembers(key))
        except Exception as e:
            logger.error(f"Failed to get set members for key {key}: {e}")
            return []


# Global Redis service instance
_redis_service: Optional[RedisService] = None


def _get_redis_service(env: Environment) -> RedisService:
    """Get or create Redis service singleton."""
    global _redis_service
    if _redis_service is None:
        _redis_service = RedisService(env)
    return _redis_service


def get_redis_or_none() -> Optional[RedisService]:
    return _redis_service


def get_redis(env: Environment = Depends(get_env)) -> RedisService:
    return _get_redis_service(env)


async def startup_redis(env: Environment):
    """Initialize Redis service on startup."""
    redis_service = _get_redis_service(env)
    await redis_service.connect()
    logger.info("Redis service initialized")


async def shutdown_redis():
    """Cleanup Redis service on shutdown."""
    global _redis_service
    if _redis_service:
        await _redis_service.disconnect()
        _redis_service = None
        logger.info("Redis service shutdown complete")
