import json
import logging

import redis.asyncio as redis

from travelbunk.core.config import REDIS_URL, NOTIFICATION_CHANNEL_PREFIX

logger = logging.getLogger(__name__)

# Connection Pool (Reusable)
pool = redis.ConnectionPool.from_url(REDIS_URL, decode_responses=True)

def user_channel(user_id: str) -> str:
    return f"{NOTIFICATION_CHANNEL_PREFIX}:{user_id}"

class RedisManager:
    @staticmethod
    def get_client() -> redis.Redis:
        """
        Returns an async Redis client from the global connection pool.
        """
        return redis.Redis(connection_pool=pool)

    @staticmethod
    async def publish_user_event(user_id: str, event_name: str, payload: dict) -> int:
        """
        Publishes one event on the user's notification channel.
        Returns the number of subscribers that received it.
        """
        client = RedisManager.get_client()
        message = json.dumps({"event": event_name, "payload": payload}, default=str)
        return await client.publish(user_channel(user_id), message)

    @staticmethod
    async def close():
        await pool.disconnect()
