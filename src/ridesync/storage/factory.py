import logging

import redis.asyncio as aioredis

from ..settings import StorageSettings
from .base import KeyValueStore
from .memory import InMemoryKeyValueStore
from .redis_store import RedisKeyValueStore

logger = logging.getLogger(__name__)


def create_store(settings: StorageSettings) -> KeyValueStore:
    """Build the configured key-value backend."""
    if settings.backend == "redis":
        client = aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password or None,
            decode_responses=True,
        )
        logger.info(
            "Using Redis key-value store at %s:%s/%s",
            settings.redis_host,
            settings.redis_port,
            settings.redis_db,
        )
        return RedisKeyValueStore(client)

    logger.info("Using in-memory key-value store")
    return InMemoryKeyValueStore()
