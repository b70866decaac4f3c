from .base import KeyValueStore
from .blob import NO_CHANGE, load_json, save_json, update_json
from .factory import create_store
from .memory import InMemoryKeyValueStore
from .redis_store import RedisKeyValueStore

__all__ = [
    "NO_CHANGE",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "create_store",
    "load_json",
    "save_json",
    "update_json",
]
