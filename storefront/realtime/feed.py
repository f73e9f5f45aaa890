"""
Change Feed Transports

A change feed carries row-level change notifications on named channels
("orders", "user_activity"). Two transports are provided:

- RedisChangeFeed: Redis pub/sub, shared by every worker process
- LocalChangeFeed: in-process fan-out over asyncio queues, for
  single-process deployments and tests

Delivery is best-effort. A subscriber that connects late never sees
earlier events, and a dropped connection simply ends the stream.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, Set

import structlog
from pydantic import BaseModel, Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)

ORDERS_CHANNEL = "orders"
ACTIVITY_CHANNEL = "user_activity"


# =============================================================================
# EVENT MODEL
# =============================================================================

class ChangeType(str, Enum):
    """Row change kinds"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class ChangeEvent(BaseModel):
    """A single row change on a logical channel"""
    channel: str
    type: ChangeType
    record: Dict[str, Any] = Field(default_factory=dict)
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# TRANSPORT PORT
# =============================================================================

class ChangeStream(ABC):
    """Async iterator over the events of one channel subscription"""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    @abstractmethod
    async def __anext__(self) -> ChangeEvent:
        pass

    @abstractmethod
    async def aclose(self) -> None:
        """Stop receiving and release the subscription"""
        pass


class ChangeFeed(ABC):
    """Transport abstraction for change notifications"""

    name = "abstract"

    @abstractmethod
    async def publish(self, channel: str, event: ChangeEvent) -> None:
        pass

    @abstractmethod
    async def subscribe(self, channel: str) -> ChangeStream:
        pass

    async def close(self) -> None:
        pass


# =============================================================================
# IN-PROCESS TRANSPORT
# =============================================================================

_CLOSED = object()


class LocalChangeStream(ChangeStream):

    def __init__(self, feed: "LocalChangeFeed", channel: str):
        self._feed = feed
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._detach(self._channel, self)
        self._queue.put_nowait(_CLOSED)


class LocalChangeFeed(ChangeFeed):
    """In-process pub/sub; every open stream on a channel gets every event"""

    name = "local"

    def __init__(self):
        self._streams: Dict[str, Set[LocalChangeStream]] = {}

    async def publish(self, channel: str, event: ChangeEvent) -> None:
        for stream in list(self._streams.get(channel, ())):
            stream.deliver(event)

    async def subscribe(self, channel: str) -> ChangeStream:
        stream = LocalChangeStream(self, channel)
        self._streams.setdefault(channel, set()).add(stream)
        return stream

    def subscriber_count(self, channel: str) -> int:
        return len(self._streams.get(channel, ()))

    def _detach(self, channel: str, stream: LocalChangeStream) -> None:
        streams = self._streams.get(channel)
        if streams is not None:
            streams.discard(stream)
            if not streams:
                del self._streams[channel]

    async def close(self) -> None:
        for streams in list(self._streams.values()):
            for stream in list(streams):
                await stream.aclose()


# =============================================================================
# REDIS TRANSPORT
# =============================================================================

class RedisChangeStream(ChangeStream):

    def __init__(self, pubsub, channel: str):
        self._pubsub = pubsub
        self._channel = channel
        self._messages = pubsub.listen()

    async def __anext__(self) -> ChangeEvent:
        while True:
            message = await self._messages.__anext__()
            if message.get("type") != "message":
                continue
            try:
                return ChangeEvent.model_validate_json(message["data"])
            except ValidationError as e:
                logger.warning("Discarding malformed change event", channel=self._channel, error=str(e))

    async def aclose(self) -> None:
        try:
            await self._pubsub.unsubscribe()
        except RedisError as e:
            logger.debug("Unsubscribe failed", channel=self._channel, error=str(e))
        await self._pubsub.aclose()


class RedisChangeFeed(ChangeFeed):
    """
    Redis pub/sub transport.

    Channels are namespaced as "<prefix>:<channel>" and payloads are the
    JSON form of ChangeEvent.
    """

    name = "redis"

    def __init__(self, client: Redis, prefix: str = "storefront"):
        self._client = client
        self._prefix = prefix

    def _channel_name(self, channel: str) -> str:
        return f"{self._prefix}:{channel}"

    async def publish(self, channel: str, event: ChangeEvent) -> None:
        await self._client.publish(self._channel_name(channel), event.model_dump_json())

    async def subscribe(self, channel: str) -> ChangeStream:
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(self._channel_name(channel))
        logger.info("Subscribed to change channel", channel=self._channel_name(channel))
        return RedisChangeStream(pubsub, channel)
