import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..broadcast import EventBroadcastLog, location_update_type
from ..core.exceptions import ConflictError, StorageError
from ..geo import is_within_proximity, trip_distance_km
from ..registry import TripRequestRegistry
from ..settings import CoordinationSettings
from ..storage import KeyValueStore, keys
from ..storage.blob import decode, encode, load_json, update_json
from ..trip import TripStatus
from ..utils.async_helpers import BackgroundTasks
from ..utils.clock import Clock, now_ms
from .models import EtaEstimate, LocationUpdate, Role, TripLocations

logger = logging.getLogger(__name__)

LocationSync = Callable[[LocationUpdate], Awaitable[Any]]


class TripLocationService:
    """Latest positions, bounded history and ETA for trip participants."""

    def __init__(
        self,
        store: KeyValueStore,
        registry: TripRequestRegistry,
        broadcast_log: EventBroadcastLog,
        settings: CoordinationSettings | None = None,
        clock: Clock = now_ms,
        background: BackgroundTasks | None = None,
        location_sync: LocationSync | None = None,
    ):
        self._store = store
        self._registry = registry
        self._broadcast_log = broadcast_log
        self._settings = settings or CoordinationSettings()
        self._clock = clock
        self._background = background or BackgroundTasks()
        self._location_sync = location_sync

    def set_location_sync(self, location_sync: LocationSync | None) -> None:
        self._location_sync = location_sync

    async def update_user_location(
        self,
        user_id: str | int | None,
        role: Role,
        location: dict[str, Any],
        trip_id: str | None = None,
    ) -> bool:
        """Record a position fix; returns ``False`` for incomplete input or storage failure."""
        if not user_id or location.get("latitude") is None or location.get("longitude") is None:
            logger.error(f"Invalid location update data for user {user_id}: {location}")
            return False

        try:
            update = LocationUpdate(
                user_id=str(user_id),
                role=role,
                latitude=location["latitude"],
                longitude=location["longitude"],
                timestamp=self._clock(),
                trip_id=trip_id,
                speed=location.get("speed"),
                heading=location.get("heading"),
                accuracy=location.get("accuracy"),
            )
        except ValueError as e:
            logger.error(f"Invalid location update data for user {user_id}: {e}")
            return False

        record = update.to_storage()
        try:
            await self._store.set(keys.user_location(role, update.user_id), encode(record))

            if trip_id:
                await self._store.set(keys.trip_location(trip_id, role), encode(record))
                await self._broadcast_log.broadcast_trip_update(
                    location_update_type(role),
                    {
                        "id": trip_id,
                        role: {
                            "id": update.user_id,
                            "location": {"latitude": update.latitude, "longitude": update.longitude},
                        },
                    },
                )
                if self._location_sync is not None:
                    self._background.spawn(self._sync(update), name=f"location-sync-{trip_id}")

            size = self._settings.location_history_size
            await update_json(
                self._store,
                keys.user_location_history(role, update.user_id),
                lambda history: [*history, record][-size:],
            )
            return True
        except (StorageError, ConflictError) as e:
            logger.error(f"Error updating user location: {e}")
            return False

    async def _sync(self, update: LocationUpdate) -> None:
        try:
            await self._location_sync(update)
        except Exception as e:
            logger.info(f"Server location update failed: {e}")

    async def get_user_location(self, user_id: str | int, role: Role) -> LocationUpdate | None:
        try:
            raw = await self._store.get(keys.user_location(role, user_id))
        except StorageError as e:
            logger.error(f"Error getting {role} location: {e}")
            return None
        if not raw:
            logger.info(f"No location found for {role} {user_id}")
            return None

        location = LocationUpdate.model_validate(decode(raw, dict))
        age_ms = self._clock() - location.timestamp
        if age_ms > self._settings.stale_location_seconds * 1000:
            logger.info(f"Location for {role} {user_id} is outdated ({round(age_ms / 60000)} minutes old)")
        return location

    async def get_user_location_history(self, user_id: str | int, role: Role) -> list[LocationUpdate]:
        try:
            history = await load_json(self._store, keys.user_location_history(role, user_id))
        except StorageError as e:
            logger.error(f"Error getting {role} location history: {e}")
            return []
        return [LocationUpdate.model_validate(entry) for entry in history]

    async def get_trip_locations(self, trip_id: str) -> TripLocations:
        """Trip-scoped positions of both participants."""
        if await self._registry.get_request_by_id(trip_id) is None:
            logger.info(f"Trip {trip_id} not found for location tracking")
            return TripLocations()

        try:
            driver = decode(await self._store.get(keys.trip_location(trip_id, "driver")), lambda: None)
            customer = decode(await self._store.get(keys.trip_location(trip_id, "customer")), lambda: None)
        except StorageError as e:
            logger.error(f"Error getting trip locations: {e}")
            return TripLocations()

        return TripLocations(
            driver=LocationUpdate.model_validate(driver) if driver else None,
            customer=LocationUpdate.model_validate(customer) if customer else None,
        )

    async def calculate_eta(self, trip_id: str) -> EtaEstimate:
        trip = await self._registry.get_request_by_id(trip_id)
        locations = await self.get_trip_locations(trip_id)
        driver = locations.driver
        if trip is None or driver is None:
            return EtaEstimate.unknown()

        target = trip.pickup.coordinates if trip.status is TripStatus.ACCEPTED else trip.destination.coordinates
        distance_km = trip_distance_km(driver.latitude, driver.longitude, target.latitude, target.longitude)

        speed = driver.speed or self._settings.default_speed_mps
        effective_speed = max(speed, self._settings.min_speed_mps)

        return EtaEstimate(
            eta_seconds=round(distance_km * 1000 / effective_speed),
            distance_remaining=distance_km,
            has_arrived=is_within_proximity(
                driver.latitude,
                driver.longitude,
                target.latitude,
                target.longitude,
                self._settings.arrival_proximity_threshold_m,
            ),
        )
