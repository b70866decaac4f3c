import pytest

from ridesync.storage import InMemoryKeyValueStore


@pytest.mark.unit
class TestInMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_get_set_remove(self):
        store = InMemoryKeyValueStore()
        assert await store.get("a") is None

        await store.set("a", "1")
        assert await store.get("a") == "1"

        await store.remove("a")
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_multi_remove_and_keys(self):
        store = InMemoryKeyValueStore({"a": "1", "b": "2", "c": "3"})
        await store.multi_remove(["a", "c", "missing"])
        assert await store.get_all_keys() == ["b"]

    @pytest.mark.asyncio
    async def test_compare_and_set_on_absent_key(self):
        store = InMemoryKeyValueStore()
        assert await store.compare_and_set("k", None, "v1") is True
        assert await store.compare_and_set("k", None, "v2") is False
        assert await store.get("k") == "v1"

    @pytest.mark.asyncio
    async def test_compare_and_set_requires_matching_value(self):
        store = InMemoryKeyValueStore({"k": "old"})
        assert await store.compare_and_set("k", "stale", "new") is False
        assert await store.compare_and_set("k", "old", "new") is True
        assert store.snapshot() == {"k": "new"}
