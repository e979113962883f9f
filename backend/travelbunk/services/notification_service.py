# backend/travelbunk/services/notification_service.py
import logging

from travelbunk.db.database_redis import RedisManager

logger = logging.getLogger(__name__)

REQUEST_RECEIVED = "request-received"
REQUEST_RESPONDED = "request-responded"

class RedisNotificationSink:
    """
    Best-effort push to a user's channel. At-most-once: a Redis failure is
    logged and dropped, and nobody listening is not an error.
    """

    async def publish(self, channel: str, event_name: str, payload: dict) -> None:
        try:
            receivers = await RedisManager.publish_user_event(channel, event_name, payload)
            logger.debug("[Notify] %s -> %s (%s subscribers)", event_name, channel, receivers)
        except Exception as e:
            logger.error("[Notify] Redis publish failed (%s -> %s): %s", event_name, channel, e)

def get_notification_sink() -> RedisNotificationSink:
    return RedisNotificationSink()
