import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import REDIS_URL

logger = logging.getLogger(__name__)

# Shared pool; clients are cheap wrappers around it
pool = redis.ConnectionPool.from_url(REDIS_URL, decode_responses=True)

class RedisManager:
    @staticmethod
    def get_client() -> redis.Redis:
        """
        Returns an async Redis client from the global connection pool.
        """
        return redis.Redis(connection_pool=pool)

    @staticmethod
    async def ping() -> bool:
        """Used by the health endpoint; never raises."""
        try:
            return bool(await RedisManager.get_client().ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    @staticmethod
    async def close():
        await pool.disconnect()
