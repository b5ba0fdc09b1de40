"""
Realtime fan-out of chat events over Redis pub/sub.

Each project has its own channel (chat:project:<id>). Publishing is
fire-and-forget: a failed publish is logged and never fails the state
change that triggered it. Subscribers that miss events recover by
re-fetching the room.
"""

import logging
from collections.abc import AsyncIterator
from functools import lru_cache
from typing import Any

import redis.asyncio as redis
from pydantic import ValidationError

from app.config import get_settings
from app.schemas.chat import ChatEvent, ChatEventKind

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> redis.Redis:
    """Shared Redis client (connections are opened lazily from its pool)."""
    return redis.from_url(get_settings().redis_url, decode_responses=True)


async def close_redis_client() -> None:
    if get_redis_client.cache_info().currsize:
        await get_redis_client().aclose()
        get_redis_client.cache_clear()


class RealtimePublisher:
    """Publishes ChatEvents to per-project channels and streams them back out."""

    def __init__(self, client: redis.Redis, channel_prefix: str = "chat:project:"):
        self.client = client
        self.channel_prefix = channel_prefix

    def channel(self, project_id: str) -> str:
        return f"{self.channel_prefix}{project_id}"

    async def publish(self, project_id: str, kind: ChatEventKind, payload: dict[str, Any]) -> None:
        event = ChatEvent(project_id=project_id, kind=kind, payload=payload)
        try:
            await self.client.publish(self.channel(project_id), event.model_dump_json())
        except Exception as e:
            logger.warning("Failed to publish %s for project %s: %s", kind.value, project_id, e)

    async def subscribe(self, project_id: str) -> AsyncIterator[ChatEvent]:
        """Yield events for one project until the caller stops iterating."""
        pubsub = self.client.pubsub()
        channel = self.channel(project_id)
        await pubsub.subscribe(channel)
        try:
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    yield ChatEvent.model_validate_json(raw["data"])
                except ValidationError:
                    logger.warning("Dropping malformed event on %s", channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
