"""
Realtime fan-out of recorded answers over Redis pub/sub.

Publishing is best-effort: callers log a ProviderError and carry on, the recorded
answer is never rolled back because a live dashboard missed an update.
"""

import logging
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.errors import ProviderError

logger = logging.getLogger(__name__)


class RealtimePublisher(Protocol):
    async def publish(self, channel: str, payload: str) -> None: ...


class RedisPublisher:
    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        # Connections are opened lazily on first publish
        self.redis_client: redis.Redis = redis.from_url(
            redis_url, socket_timeout=5.0, socket_connect_timeout=5.0
        )

    async def publish(self, channel: str, payload: str) -> None:
        try:
            receivers = await self.redis_client.publish(channel, payload)
        except RedisError as e:
            raise ProviderError("realtime publish", f"{type(e).__name__}: {e}") from e
        logger.debug(f"realtime.published channel={channel} receivers={receivers}")

    async def aclose(self) -> None:
        await self.redis_client.aclose()
