"""JSON blob helpers over the key-value store.

Every collection (trip requests, broadcast events, location history) is a
single JSON document under one key. ``update_json`` wraps read / mutate /
rewrite in an optimistic compare-and-swap loop; a concurrent write makes
the loop re-read and re-apply the mutation instead of being overwritten.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from ..core.exceptions import ConflictError
from .base import KeyValueStore

logger = logging.getLogger(__name__)

NO_CHANGE: Any = object()


def decode(raw: str | None, default_factory: Callable[[], Any] = list) -> Any:
    if raw is None:
        return default_factory()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Discarding corrupt JSON blob: {e}")
        return default_factory()


def encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


async def load_json(
    store: KeyValueStore,
    key: str,
    default_factory: Callable[[], Any] = list,
) -> Any:
    return decode(await store.get(key), default_factory)


async def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    await store.set(key, encode(value))


async def update_json(
    store: KeyValueStore,
    key: str,
    mutate: Callable[[Any], Any],
    default_factory: Callable[[], Any] = list,
    max_attempts: int = 5,
) -> Any:
    """Apply ``mutate`` to the decoded blob and write it back atomically.

    ``mutate`` receives a fresh copy on every attempt and returns the new
    document, or ``NO_CHANGE`` to skip the write. It must not have side
    effects beyond its return value because it may run more than once.

    Raises:
        ConflictError: another writer won every attempt.
    """
    for attempt in range(max_attempts):
        raw = await store.get(key)
        current = decode(raw, default_factory)
        updated = mutate(current)
        if updated is NO_CHANGE:
            return current

        if await store.compare_and_set(key, raw, encode(updated)):
            return updated

        logger.debug(f"Concurrent write on {key}, retrying (attempt {attempt + 1}/{max_attempts})")

    raise ConflictError(
        f"Gave up updating {key} after {max_attempts} conflicting writes",
        details={"key": key, "attempts": max_attempts},
    )
