import logging

from redis.exceptions import RedisError

from app.core.config import PRESENCE_CACHE_TTL_SECONDS
from app.db.database_redis import RedisManager

logger = logging.getLogger(__name__)


class PresenceCache:
    """
    Short-lived online flag per user in Redis (user:{id}:online -> "1"/"0").
    Write failures are logged; the realtime flow continues without the cache.
    """

    def __init__(self, ttl: int = PRESENCE_CACHE_TTL_SECONDS):
        self.ttl = ttl

    @staticmethod
    def _key(user_id: int) -> str:
        return f"user:{user_id}:online"

    async def set_online(self, user_id: int, is_online: bool):
        redis = RedisManager.get_client()
        try:
            await redis.set(self._key(user_id), "1" if is_online else "0", ex=self.ttl)
        except RedisError as e:
            logger.warning("Presence cache write failed for user %s: %s", user_id, e)
