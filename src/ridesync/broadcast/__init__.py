from .events import (
    CUSTOMER_LOCATION_UPDATE,
    DRIVER_LOCATION_UPDATE,
    TRIP_ACCEPTED,
    TRIP_CREATED,
    BroadcastEvent,
    location_update_type,
)
from .log import EventBroadcastLog
from .poller import EventPoller
from .publisher import TRIP_UPDATES_CHANNEL, EventPublisher, NoopEventPublisher, RedisEventPublisher

__all__ = [
    "CUSTOMER_LOCATION_UPDATE",
    "DRIVER_LOCATION_UPDATE",
    "TRIP_ACCEPTED",
    "TRIP_CREATED",
    "TRIP_UPDATES_CHANNEL",
    "BroadcastEvent",
    "EventBroadcastLog",
    "EventPoller",
    "EventPublisher",
    "NoopEventPublisher",
    "RedisEventPublisher",
    "location_update_type",
]
