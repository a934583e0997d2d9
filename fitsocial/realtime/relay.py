"""
Redis change relay

Carries change events between processes over Redis pub/sub. Each process tags
what it publishes with its instance id and ignores its own messages, so local
subscribers see every event exactly once.
"""

import asyncio
import json
import uuid
from typing import Optional

from redis.asyncio import Redis

from fitsocial.core.logging import get_logger
from fitsocial.realtime.feed import ChangeFeed
from fitsocial.schemas.realtime import ChangeEvent

logger = get_logger(__name__)


class RedisChangeRelay:
    def __init__(self, redis: Redis, feed: ChangeFeed, channel: str):
        self.redis = redis
        self.feed = feed
        self.channel = channel
        self.instance_id = uuid.uuid4().hex
        self._listener: Optional[asyncio.Task] = None

    def encode(self, event: ChangeEvent) -> str:
        return json.dumps({"origin": self.instance_id, "event": event.model_dump(mode="json")})

    async def forward(self, event: ChangeEvent) -> None:
        await self.redis.publish(self.channel, self.encode(event))

    async def handle_raw(self, data: str) -> bool:
        """Deliver a pub/sub payload locally. Returns False for own or malformed payloads."""
        try:
            payload = json.loads(data)
            if payload.get("origin") == self.instance_id:
                return False
            event = ChangeEvent.model_validate(payload["event"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed relay payload: {e}")
            return False

        await self.feed.deliver(event)
        return True

    async def start(self) -> None:
        if self._listener is None:
            self.feed.attach_relay(self)
            self._listener = asyncio.create_task(self._listen())
            logger.info(f"Change relay started on channel {self.channel}")

    async def stop(self) -> None:
        self.feed.attach_relay(None)
        if self._listener is None:
            return
        self._listener.cancel()
        try:
            await self._listener
        except asyncio.CancelledError:
            pass
        self._listener = None

    async def _listen(self) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self.handle_raw(message["data"])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Change relay listener stopped: {e}")
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
