"""Per-actor trip session: the local projection of "the current trip"."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..trip import Coordinates

SessionStatus = Literal["waiting", "active", "completed", "cancelled"]

DEFAULT_TRIP_DURATION_SECONDS = 120


class LocationInfo(BaseModel):
    coordinates: Coordinates
    timestamp: int
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None


class TripSessionState(BaseModel):
    """What this device believes about its current trip. Not a source of truth."""

    is_active: bool = False
    start_time: int | None = None
    end_time: int | None = None
    trip_duration: int = DEFAULT_TRIP_DURATION_SECONDS
    driver_id: str | None = None
    driver_name: str | None = None
    origin: str | None = None
    destination: str | None = None
    fare: float | None = None
    status: SessionStatus | None = None
    driver_location: LocationInfo | None = None
    customer_location: LocationInfo | None = None
    last_location_update: int | None = None
    estimated_arrival: int | None = None


class TripSession(BaseModel):
    """Session context owned by one app instance / actor.

    Replaces a module-level mutable singleton: create one per actor, inject
    it into the services that mutate it, and ``reset()`` on login/logout so
    nothing leaks between users.
    """

    active_taxi_trip: bool = False
    needs_new_order: bool = True
    pickup_coordinates: Coordinates | None = None
    destination_coordinates: Coordinates | None = None
    is_searching_driver: bool = False
    search_time_seconds: int = 0
    driver_found: bool = False
    driver_location: LocationInfo | None = None
    customer_location: LocationInfo | None = None
    trip_data: TripSessionState = Field(default_factory=TripSessionState)

    def reset(self) -> None:
        """Return every field to its process-start default."""
        fresh = TripSession()
        for name in type(self).model_fields:
            setattr(self, name, getattr(fresh, name))

    def clear_trip(self, status: SessionStatus | None = None, duration: int = DEFAULT_TRIP_DURATION_SECONDS) -> None:
        """Drop the current trip and return to the "ready for a new order" baseline."""
        self.trip_data = TripSessionState(status=status, trip_duration=duration)
        self.pickup_coordinates = None
        self.destination_coordinates = None
        self.active_taxi_trip = False
        self.needs_new_order = True

    def flags(self) -> dict[str, Any]:
        return {
            "activeTaxiTrip": self.active_taxi_trip,
            "isSearchingDriver": self.is_searching_driver,
            "driverFound": self.driver_found,
            "needsNewOrder": self.needs_new_order,
            "searchTimeSeconds": self.search_time_seconds,
        }
