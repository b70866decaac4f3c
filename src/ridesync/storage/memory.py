import asyncio

from .base import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store used for tests and single-device offline runs."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def multi_remove(self, keys: list[str]) -> None:
        async with self._lock:
            for key in keys:
                self._data.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        return list(self._data.keys())

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        async with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)
