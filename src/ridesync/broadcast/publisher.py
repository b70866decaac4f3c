import json
import logging
from abc import ABC, abstractmethod

import redis.asyncio as aioredis
from opentelemetry import trace
from redis.exceptions import RedisError

from ..trip_logging import LogContext
from .events import BroadcastEvent

logger = logging.getLogger(__name__)

TRIP_UPDATES_CHANNEL = "trip-updates"

_tracer = trace.get_tracer(__name__)


class EventPublisher(ABC):
    """Push side of the broadcast log."""

    @abstractmethod
    async def publish(self, event: BroadcastEvent) -> None: ...

    async def close(self) -> None:
        return None


class NoopEventPublisher(EventPublisher):
    async def publish(self, event: BroadcastEvent) -> None:
        return None


class RedisEventPublisher(EventPublisher):
    """Publishes every appended broadcast event on a Redis channel.

    Failures are logged and recorded on the span; the stored log stays the
    source of truth for pollers.
    """

    def __init__(self, client: aioredis.Redis, channel: str = TRIP_UPDATES_CHANNEL):
        self._client = client
        self.channel = channel

    async def publish(self, event: BroadcastEvent) -> None:
        with _tracer.start_as_current_span("redis.publish") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("db.redis.channel", self.channel)
            span.set_attribute("event.type", event.type)

            correlation_id = LogContext.get().get("correlation_id")
            if correlation_id:
                span.set_attribute("correlation_id", correlation_id)

            try:
                await self._client.publish(self.channel, json.dumps(event.to_storage()))
            except RedisError as e:
                span.record_exception(e)
                logger.error(f"Failed to publish {event.type} to channel {self.channel}: {e}")

    async def close(self) -> None:
        await self._client.aclose()
