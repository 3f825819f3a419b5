"""FastAPI dependencies wiring services to the store and Redis."""

import redis.asyncio as aioredis
from fastapi import Depends

from vibex.db.database import async_session_factory
from vibex.db.redis import get_redis
from vibex.db.store import SessionStore
from vibex.services.feed_service import FeedService
from vibex.services.notification_service import NotificationService
from vibex.services.participation_service import ParticipationService
from vibex.services.reputation_service import ReputationService


async def get_store() -> SessionStore:
    return SessionStore(async_session_factory)


async def get_notifier(redis: aioredis.Redis = Depends(get_redis)) -> NotificationService:
    return NotificationService(redis)


async def get_participation_service(
    store: SessionStore = Depends(get_store),
    notifier: NotificationService = Depends(get_notifier),
) -> ParticipationService:
    return ParticipationService(store, notifier)


async def get_reputation_service(
    store: SessionStore = Depends(get_store),
    notifier: NotificationService = Depends(get_notifier),
) -> ReputationService:
    return ReputationService(store, notifier)


async def get_feed_service(store: SessionStore = Depends(get_store)) -> FeedService:
    return FeedService(store)
