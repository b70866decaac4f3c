"""Asynchronous string key-value store contract."""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Flat string -> string store with no transactions or schema.

    Values are JSON-encoded by callers. ``compare_and_set`` is the only
    atomic primitive and is what read-modify-write callers build on.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def remove(self, key: str) -> None: ...

    @abstractmethod
    async def multi_remove(self, keys: list[str]) -> None: ...

    @abstractmethod
    async def get_all_keys(self) -> list[str]: ...

    @abstractmethod
    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        """Write ``value`` only if the key currently holds ``expected``.

        ``expected=None`` means the key must be absent. Returns False when
        another writer got there first.
        """

    async def close(self) -> None:
        return None
