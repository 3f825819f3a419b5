"""Notification service - hands notification triggers to the fan-out worker.

Triggers are published on a Redis channel. Delivery is best effort: a
failed publish is logged and dropped so it never fails the operation
that caused it.
"""

import json

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from vibex.config import settings
from vibex.core.kinds import NotificationType

logger = structlog.get_logger()


class NotificationService:
    def __init__(self, redis: aioredis.Redis, channel: str | None = None):
        self.redis = redis
        self.channel = channel or settings.NOTIFICATION_CHANNEL

    async def notify(
        self,
        notification_type: NotificationType,
        recipient_id: str,
        actor_id: str,
        session_id: int | None = None,
    ) -> bool:
        """Publish a notification trigger. Returns False if it was skipped or failed."""
        if recipient_id == actor_id:
            return False

        payload = {
            "type": notification_type.value,
            "recipient_id": recipient_id,
            "actor_id": actor_id,
            "session_id": session_id,
        }
        try:
            await self.redis.publish(self.channel, json.dumps(payload))
        except (RedisError, OSError) as exc:
            logger.warning(
                "notification_failed",
                type=notification_type.value,
                recipient_id=recipient_id,
                session_id=session_id,
                error=str(exc),
            )
            return False
        return True
