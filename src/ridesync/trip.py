"""Trip request models and status vocabulary."""

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class TripStatus(str, Enum):
    """Registry status of a trip request.

    Lower-case is canonical. The trip API speaks upper-case and has a
    few extra in-trip stages which all collapse onto ``ACCEPTED`` here.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        return self in OPEN_STATUSES

    def can_transition_to(self, target: "TripStatus") -> bool:
        """Whether a request may move from this status to ``target``.

        Repeating the current status is allowed and changes nothing.
        """
        return target is self or target in _TRANSITIONS[self]

    @classmethod
    def from_api(cls, value: "str | TripStatus") -> "TripStatus":
        """Normalize an API or UI status string of any casing."""
        if isinstance(value, TripStatus):
            return value
        normalized = value.strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            pass
        alias = _API_ALIASES.get(normalized)
        if alias is not None:
            return alias
        logger.warning(f"Unknown trip status {value!r}, treating as cancelled")
        return cls.CANCELLED

    def to_event_type(self) -> str:
        """Event type broadcast when a trip reaches this status (e.g. 'trip_completed')."""
        return f"trip_{self.value}"


TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})
OPEN_STATUSES = frozenset({TripStatus.PENDING, TripStatus.ACCEPTED})

# Terminal statuses have no exits.
_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.PENDING: frozenset({TripStatus.ACCEPTED, TripStatus.CANCELLED}),
    TripStatus.ACCEPTED: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

_API_ALIASES: dict[str, TripStatus] = {
    "in_progress": TripStatus.ACCEPTED,
    "on_the_way": TripStatus.ACCEPTED,
    "driver_on_the_way": TripStatus.ACCEPTED,
    "arrived": TripStatus.ACCEPTED,
    "driver_arrived": TripStatus.ACCEPTED,
}

_TO_API: dict[str, str] = {
    "pending": "PENDING",
    "accepted": "ACCEPTED",
    "on_the_way": "DRIVER_ON_THE_WAY",
    "arrived": "DRIVER_ARRIVED",
    "in_progress": "IN_PROGRESS",
    "completed": "COMPLETED",
    "cancelled": "CANCELLED",
}


def to_api_status(status: "str | TripStatus") -> str:
    """Map a UI/registry status onto the trip API vocabulary.

    Unknown values pass through untouched.
    """
    value = status.value if isinstance(status, TripStatus) else status
    return _TO_API.get(value.lower(), value)


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Place(BaseModel):
    name: str
    coordinates: Coordinates = Field(default_factory=lambda: Coordinates(latitude=0, longitude=0))


class Customer(BaseModel):
    id: str | int
    name: str


class TripRequest(BaseModel):
    """One ride request as stored in the shared request list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    customer: Customer
    pickup: Place
    destination: Place
    fare: float
    timestamp: int
    status: TripStatus = TripStatus.PENDING
    driver_id: str | None = Field(default=None, alias="driverId")
    distance_km: float | None = None
    tariff: dict[str, Any] | None = None
    updated_at: str | None = Field(default=None, alias="updatedAt")
    in_history: bool = Field(default=False, alias="inHistory")

    @field_validator("driver_id", mode="before")
    @classmethod
    def coerce_driver_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return TripStatus.from_api(v) if isinstance(v, str) else v

    @property
    def customer_id(self) -> str:
        return str(self.customer.id)

    def is_owned_by(self, user_id: str | int) -> bool:
        return self.customer_id == str(user_id)

    def is_assigned_to(self, driver_id: str | int) -> bool:
        return self.driver_id is not None and self.driver_id == str(driver_id)

    def to_storage(self) -> dict[str, Any]:
        """Serialize with the camelCase keys the shared blob uses."""
        data = self.model_dump(mode="json", by_alias=True)
        for optional in ("distance_km", "tariff", "updatedAt"):
            if data.get(optional) is None:
                data.pop(optional, None)
        if not data.get("inHistory"):
            data.pop("inHistory", None)
        return data

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> "TripRequest":
        return cls.model_validate(data)


class NewTripRequest(BaseModel):
    """Caller-supplied fields of a request; id, timestamp, status and driver are assigned."""

    customer: Customer
    pickup: Place
    destination: Place
    fare: float
    distance_km: float | None = None
    tariff: dict[str, Any] | None = None
