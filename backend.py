import asyncio
import json
import uuid
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional

import redis

from logging_config import get_logger
from redis_keys import REDIS_BROADCAST_CHANNEL

logger = get_logger(__name__)

DeliverFn = Callable[[str, str, Any, Optional[str]], Awaitable[int]]


class RedisBridge:
    """Shares broadcasts between instances over one Redis pub/sub channel.

    Each instance publishes every broadcast it makes and re-delivers, to its
    own connections, broadcasts published by other instances.
    """

    def __init__(self, redis_client, pubsub_client, channel: str = REDIS_BROADCAST_CHANNEL, seen_limit: int = 1024):
        self.redis_client = redis_client
        # Separate connection for pub/sub (required by Redis)
        self.pubsub_client = pubsub_client
        self.channel = channel
        self.instance_id = uuid.uuid4().hex
        self.seen_limit = seen_limit
        self._seen: OrderedDict = OrderedDict()
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    @classmethod
    def from_url(cls, redis_url: str, channel: str = REDIS_BROADCAST_CHANNEL):
        """Connect both clients and ping them; raises if Redis is unreachable."""
        redis_client = redis.Redis.from_url(redis_url, decode_responses=True, socket_timeout=5)
        redis_client.ping()
        logger.info("Redis pub client connected successfully")
        pubsub_client = redis.Redis.from_url(redis_url, decode_responses=True)
        pubsub_client.ping()
        logger.info("Redis sub client connected successfully")
        return cls(redis_client, pubsub_client, channel=channel)

    async def publish_message(self, room_id: str, message_type: str, data: Any, exclude_id: Optional[str] = None) -> Optional[str]:
        """Publish one broadcast from a worker thread. Returns its message id, or None if publishing failed."""
        message_id = uuid.uuid4().hex
        message = {
            "id": message_id,
            "origin": self.instance_id,
            "roomId": room_id,
            "type": message_type,
            "data": data,
            "excludeId": exclude_id,
        }
        loop = asyncio.get_running_loop()
        try:
            subscribers = await loop.run_in_executor(None, self.redis_client.publish, self.channel, json.dumps(message))
        except redis.RedisError as e:
            logger.error(f"Error publishing {message_type} for room {room_id} to Redis: {e}")
            return None
        logger.debug(f"Published {message_type} for room {room_id} to channel {self.channel}, {subscribers} subscribers")
        return message_id

    def subscribe(self):
        logger.debug(f"Subscribing to Redis channel {self.channel}")
        pubsub = self.pubsub_client.pubsub()
        pubsub.subscribe(self.channel)
        logger.info(f"Subscribed to {self.channel} channel")
        return pubsub

    def start(self, deliver: DeliverFn):
        self._closing = False
        self._pubsub = self.subscribe()
        self._task = asyncio.create_task(self._listen(deliver))

    async def _listen(self, deliver: DeliverFn):
        """Background task: poll the channel in a worker thread and re-deliver locally."""
        loop = asyncio.get_running_loop()
        pubsub = self._pubsub

        def get_message():
            try:
                return pubsub.get_message(timeout=1.0, ignore_subscribe_messages=True)
            except Exception as e:
                if not self._closing:
                    logger.error(f"Error in pubsub.get_message(): {e}", exc_info=True)
                return None

        try:
            while not self._closing:
                message = await loop.run_in_executor(None, get_message)
                if message is None or message.get("type") != "message":
                    continue
                await self.handle_message(message["data"], deliver)
        except asyncio.CancelledError:
            logger.info("Redis listener task cancelled")
            raise

    async def handle_message(self, raw: str, deliver: DeliverFn) -> bool:
        """Re-deliver one published broadcast locally unless it is ours or a duplicate."""
        try:
            message = json.loads(raw)
            message_id = message["id"]
            room_id = message["roomId"]
            message_type = message["type"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.error(f"Redis message parse error: {e}")
            return False

        if message.get("origin") == self.instance_id:
            # Already delivered locally before publishing
            return False
        if message_id in self._seen:
            logger.debug(f"Dropping duplicate bridged message {message_id}")
            return False
        self._seen[message_id] = True
        while len(self._seen) > self.seen_limit:
            self._seen.popitem(last=False)

        try:
            await deliver(room_id, message_type, message.get("data"), message.get("excludeId"))
        except Exception as e:
            logger.error(f"Error delivering bridged {message_type} for room {room_id}: {e}", exc_info=True)
            return False
        return True

    async def close(self):
        self._closing = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            try:
                self._pubsub.close()
                logger.debug("Closed pub/sub connection")
            except Exception as e:
                logger.error(f"Error closing pub/sub: {e}")
            self._pubsub = None
        for name, client in (("pub", self.redis_client), ("sub", self.pubsub_client)):
            try:
                client.close()
                logger.info(f"Closed Redis {name} client")
            except Exception as e:
                logger.error(f"Error closing Redis {name} client: {e}")
