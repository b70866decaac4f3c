"""Broadcast event shapes.

Two producers share one log: trip updates carry the whole request under
``payload``, trip events carry flat actor ids. Readers accept both.
"""

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Event types emitted by the coordination core
TRIP_CREATED = "TRIP_CREATED"
TRIP_ACCEPTED = "TRIP_ACCEPTED"
DRIVER_LOCATION_UPDATE = "DRIVER_LOCATION_UPDATE"
CUSTOMER_LOCATION_UPDATE = "CUSTOMER_LOCATION_UPDATE"


def location_update_type(role: str) -> str:
    return f"{role.upper()}_LOCATION_UPDATE"


class BroadcastEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    timestamp: int
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="eventId")
    payload: dict[str, Any] | None = None
    trip_id: str | None = Field(default=None, alias="tripId")
    driver_id: str | None = Field(default=None, alias="driverId")
    driver_name: str | None = Field(default=None, alias="driverName")
    customer_id: str | None = Field(default=None, alias="customerId")

    @property
    def subject_trip_id(self) -> str | None:
        if self.trip_id:
            return self.trip_id
        if self.payload:
            return self.payload.get("id") or self.payload.get("tripId")
        return None

    def involves(self, user_id: str | int) -> bool:
        """True when the user is the customer or the driver of the event's trip."""
        uid = str(user_id)
        if uid in (self.customer_id, self.driver_id):
            return True
        if not self.payload:
            return False
        customer = self.payload.get("customer") or {}
        candidates = (
            customer.get("id") if isinstance(customer, dict) else None,
            self.payload.get("customerId"),
            self.payload.get("userId"),
            self.payload.get("driverId"),
        )
        return any(c is not None and str(c) == uid for c in candidates)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
