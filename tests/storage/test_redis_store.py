from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError

from ridesync.core.exceptions import StorageError
from ridesync.storage import RedisKeyValueStore


@pytest.fixture
def redis_client():
    client = Mock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.delete = AsyncMock()
    client.eval = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    return client


@pytest.mark.unit
class TestRedisKeyValueStore:
    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, redis_client):
        store = RedisKeyValueStore(redis_client)
        await store.set("taxiRequests", "[]")
        redis_client.set.assert_awaited_once_with("ridesync:taxiRequests", "[]")

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, redis_client):
        redis_client.get.return_value = b"[1]"
        store = RedisKeyValueStore(redis_client)
        assert await store.get("k") == "[1]"

    @pytest.mark.asyncio
    async def test_multi_remove_single_delete(self, redis_client):
        store = RedisKeyValueStore(redis_client, namespace="t:")
        await store.multi_remove(["a", "b"])
        redis_client.delete.assert_awaited_once_with("t:a", "t:b")

    @pytest.mark.asyncio
    async def test_multi_remove_empty_is_noop(self, redis_client):
        await RedisKeyValueStore(redis_client).multi_remove([])
        redis_client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_all_keys_strips_namespace(self, redis_client):
        async def scan_iter(match):
            for key in ("ridesync:a", b"ridesync:b"):
                yield key

        redis_client.scan_iter = scan_iter
        assert await RedisKeyValueStore(redis_client).get_all_keys() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_compare_and_set_absent_flag(self, redis_client):
        store = RedisKeyValueStore(redis_client)

        assert await store.compare_and_set("k", None, "v") is True

        args = redis_client.eval.await_args.args
        assert args[1:] == (1, "ridesync:k", "", "v", "1")

    @pytest.mark.asyncio
    async def test_compare_and_set_conflict(self, redis_client):
        redis_client.eval.return_value = 0
        store = RedisKeyValueStore(redis_client)

        assert await store.compare_and_set("k", "old", "new") is False
        assert redis_client.eval.await_args.args[-1] == "0"

    @pytest.mark.asyncio
    async def test_redis_errors_become_storage_errors(self, redis_client):
        redis_client.get.side_effect = ConnectionError("refused")
        store = RedisKeyValueStore(redis_client)

        with pytest.raises(StorageError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        await RedisKeyValueStore(redis_client).close()
        redis_client.aclose.assert_awaited_once()
