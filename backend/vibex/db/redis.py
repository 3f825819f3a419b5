"""Redis connection for the notification bus (short socket timeouts)."""

import redis.asyncio as redis

from vibex.config import settings

_notification_client: redis.Redis | None = None


def get_notification_client() -> redis.Redis:
    """Shared client for publishing on NOTIFICATION_CHANNEL, created on first use."""
    global _notification_client
    if _notification_client is None:
        _notification_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL,
        )
    return _notification_client


async def close_notification_client() -> None:
    global _notification_client
    if _notification_client is not None:
        await _notification_client.aclose()
        _notification_client = None


async def get_redis() -> redis.Redis:
    """FastAPI dependency for the notification bus client."""
    return get_notification_client()
