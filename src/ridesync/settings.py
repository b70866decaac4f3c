from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ACCEPT_ENDPOINTS = [
    "/trips/{trip_id}/accept",
    "/trips/accept/{trip_id}",
    "/trips/{trip_id}",
    "/trips/accept",
    "/api/trips/accept",
    "/trip/accept",
]


class StorageSettings(BaseSettings):
    backend: Literal["memory", "redis"] = "memory"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str = ""
    cas_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Compare-and-swap attempts before a blob write gives up",
    )

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    @model_validator(mode="after")
    def validate_redis_credentials(self) -> "StorageSettings":
        if self.backend == "redis" and not self.redis_password:
            raise ValueError("Required credential not provided: STORAGE_REDIS_PASSWORD")
        return self


class ApiSettings(BaseSettings):
    base_url: str = "http://localhost:8000/api"
    timeout_seconds: float = Field(default=10.0, gt=0.0, le=120.0)
    max_retries: int = Field(default=2, ge=1, le=10)
    retry_base_delay: float = Field(default=0.5, ge=0.0, le=5.0)
    accept_endpoints: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ACCEPT_ENDPOINTS),
        description="Accept endpoint shapes probed in order until one succeeds",
    )

    model_config = SettingsConfigDict(env_prefix="API_")

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Trip API base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("accept_endpoints")
    @classmethod
    def validate_accept_endpoints(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one accept endpoint is required")
        return v


class CoordinationSettings(BaseSettings):
    """Limits and timings of the trip coordination core."""

    broadcast_capacity: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Number of most recent broadcast events retained",
    )
    location_history_size: int = Field(default=20, ge=1, le=1000)
    stale_location_seconds: int = Field(
        default=300,
        ge=1,
        description="Age after which a stored location is reported as outdated",
    )
    default_trip_duration_seconds: int = Field(default=120, ge=1)
    poll_interval_seconds: float = Field(default=3.0, gt=0.0, le=60.0)
    sample_interval_seconds: float = Field(default=3.0, gt=0.0, le=60.0)
    min_speed_mps: float = Field(
        default=5.0,
        gt=0.0,
        description="Speed floor used for ETA so near-zero samples do not explode the estimate",
    )
    default_speed_mps: float = Field(default=8.33, gt=0.0, description="~30 km/h")
    arrival_proximity_threshold_m: float = Field(default=50.0, ge=1.0, le=500.0)
    projection_max_age_seconds: int = Field(
        default=1800,
        ge=60,
        description="Active trip projections younger than this survive a forced reset",
    )

    model_config = SettingsConfigDict(env_prefix="COORD_")


class LogSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["text", "json"] = "text"

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    storage: StorageSettings = Field(default_factory=StorageSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    coordination: CoordinationSettings = Field(default_factory=CoordinationSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
