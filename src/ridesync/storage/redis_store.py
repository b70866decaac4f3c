from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from ..core.exceptions import StorageError
from .base import KeyValueStore

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

# KEYS[1]=key, ARGV[1]=expected, ARGV[2]=new value, ARGV[3]="1" when the key must be absent
_CAS_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if ARGV[3] == '1' then
    if current then return 0 end
elseif current ~= ARGV[1] then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2])
return 1
"""


class RedisKeyValueStore(KeyValueStore):
    """Key-value store backed by Redis so several devices/processes share state.

    All keys live under ``namespace``; callers see un-prefixed keys.
    """

    def __init__(self, client: aioredis.Redis, namespace: str = "ridesync:"):
        self._client = client
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(self._key(key))
        except RedisError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(self._key(key), value)
        except RedisError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e

    async def multi_remove(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*(self._key(k) for k in keys))
        except RedisError as e:
            raise StorageError(f"Failed to remove {len(keys)} keys: {e}") from e

    async def get_all_keys(self) -> list[str]:
        keys: list[str] = []
        try:
            async for raw in self._client.scan_iter(match=f"{self._namespace}*"):
                key = raw.decode("utf-8") if isinstance(raw, bytes) else raw
                keys.append(key[len(self._namespace) :])
        except RedisError as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return keys

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        try:
            result = await self._client.eval(
                _CAS_SCRIPT,
                1,
                self._key(key),
                expected or "",
                value,
                "1" if expected is None else "0",
            )
        except RedisError as e:
            raise StorageError(f"Failed compare-and-set on {key}: {e}") from e
        return bool(int(result))

    async def close(self) -> None:
        await self._client.aclose()
