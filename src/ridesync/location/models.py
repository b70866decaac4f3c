from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["driver", "customer"]


class LocationUpdate(BaseModel):
    """One GPS fix as stored under the latest-location and history keys."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    role: Role
    latitude: float
    longitude: float
    timestamp: int
    trip_id: str | None = Field(default=None, alias="tripId")
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_query_params(self) -> dict[str, str]:
        params = {
            "user_id": self.user_id,
            "role": self.role,
            "latitude": str(self.latitude),
            "longitude": str(self.longitude),
        }
        if self.trip_id:
            params["trip_id"] = self.trip_id
        for optional in ("speed", "heading", "accuracy"):
            value = getattr(self, optional)
            if value is not None:
                params[optional] = str(value)
        return params


class TripLocations(BaseModel):
    driver: LocationUpdate | None = None
    customer: LocationUpdate | None = None


class EtaEstimate(BaseModel):
    """Driver ETA to the next trip waypoint.

    Pickup while the trip is accepted, destination otherwise. Every field is
    ``None`` when the trip or the driver's position is unknown.
    """

    eta_seconds: int | None = None
    distance_remaining: float | None = Field(default=None, description="Kilometers, one decimal")
    has_arrived: bool | None = None

    @classmethod
    def unknown(cls) -> "EtaEstimate":
        return cls()
