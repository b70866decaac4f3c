import logging
from typing import Any

from ..core.exceptions import ConflictError, StorageError
from ..storage import KeyValueStore, keys
from ..storage.blob import load_json, update_json
from ..utils.clock import Clock, now_ms
from .events import BroadcastEvent
from .publisher import EventPublisher, NoopEventPublisher

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 20


class EventBroadcastLog:
    """Capped event log shared by every actor.

    Only the ``capacity`` most recent events are kept. A consumer that polls
    less often than events arrive can miss some; ``EventPoller`` narrows that
    window and the publisher removes it for subscribers.
    """

    def __init__(
        self,
        store: KeyValueStore,
        publisher: EventPublisher | None = None,
        capacity: int = DEFAULT_CAPACITY,
        clock: Clock = now_ms,
        cas_max_attempts: int = 5,
    ):
        self._store = store
        self._publisher = publisher or NoopEventPublisher()
        self._capacity = capacity
        self._clock = clock
        self._cas_max_attempts = cas_max_attempts

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def publisher(self) -> EventPublisher:
        return self._publisher

    async def append(self, event: BroadcastEvent) -> bool:
        record = event.to_storage()

        def push(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
            return [*events, record][-self._capacity :]

        try:
            await update_json(self._store, keys.BROADCAST_EVENTS, push, max_attempts=self._cas_max_attempts)
        except (StorageError, ConflictError) as e:
            logger.error(f"Error broadcasting {event.type}: {e}")
            return False

        await self._publisher.publish(event)
        return True

    async def broadcast_trip_update(self, event_type: str, payload: dict[str, Any]) -> BroadcastEvent:
        """Append an event carrying the full trip request."""
        event = BroadcastEvent(type=event_type, payload=payload, timestamp=self._clock())
        if await self.append(event):
            logger.info(f"Trip update broadcast: {event_type} for trip {payload.get('id')}")
        return event

    async def broadcast_trip_event(
        self,
        event_type: str,
        trip_id: str,
        driver_id: str | None = None,
        driver_name: str | None = None,
        customer_id: str | int | None = None,
        timestamp: int | None = None,
    ) -> BroadcastEvent:
        """Append an event keyed by explicit actor ids."""
        event = BroadcastEvent(
            type=event_type,
            trip_id=trip_id,
            driver_id=str(driver_id) if driver_id is not None else None,
            driver_name=driver_name,
            customer_id=str(customer_id) if customer_id is not None else None,
            timestamp=timestamp if timestamp is not None else self._clock(),
        )
        if await self.append(event):
            logger.info(f"Event broadcast: {event_type} for trip {trip_id}")
        return event

    async def get_latest_events(self, since: int = 0) -> list[BroadcastEvent]:
        """Events newer than ``since``, oldest first."""
        try:
            raw_events = await load_json(self._store, keys.BROADCAST_EVENTS)
        except StorageError as e:
            logger.error(f"Error getting broadcast events: {e}")
            return []

        events = []
        for raw in raw_events:
            try:
                event = BroadcastEvent.model_validate(_with_event_id(raw))
            except ValueError as e:
                logger.warning(f"Skipping malformed broadcast event: {e}")
                continue
            if event.timestamp > since:
                events.append(event)
        return events

    async def get_trip_events_for_user(self, user_id: str | int, since: int = 0) -> list[BroadcastEvent]:
        return [e for e in await self.get_latest_events(since) if e.involves(user_id)]


def _with_event_id(raw: dict[str, Any]) -> dict[str, Any]:
    """Give events written without an id a stable one so polling can dedupe them."""
    if raw.get("eventId") or raw.get("event_id"):
        return raw
    trip_id = raw.get("tripId") or (raw.get("payload") or {}).get("id")
    return {**raw, "eventId": f"{raw.get('type')}:{trip_id}:{raw.get('timestamp')}"}
