"""Trip session state machine.

``None -> waiting -> active -> {completed | cancelled}``. Every mutation
is synchronous and in-memory; storage side effects (shadow copies, registry
cleanup) run as background tasks whose failures are logged, never raised.
"""

import logging
from typing import Any

from ..settings import CoordinationSettings
from ..storage import KeyValueStore, keys
from ..storage.blob import NO_CHANGE, decode, encode, load_json, update_json
from ..trip import OPEN_STATUSES, Coordinates
from ..utils.async_helpers import BackgroundTasks
from ..utils.clock import Clock, now_ms
from .state import LocationInfo, SessionStatus, TripSession, TripSessionState

logger = logging.getLogger(__name__)

PENDING_DRIVER_ID = "pending_driver"
SEEKING_DRIVER_NAME = "Seeking Driver..."
TERMINAL_SESSION_STATUSES = frozenset({"completed", "cancelled"})
_SESSION_STATUSES = frozenset({"waiting", "active", "completed", "cancelled"})


def needs_driver_search(driver_id: str | None, driver_name: str | None) -> bool:
    return not driver_id or driver_id == PENDING_DRIVER_ID or driver_name == SEEKING_DRIVER_NAME


def _is_open(request: dict[str, Any]) -> bool:
    return request.get("status") in {s.value for s in OPEN_STATUSES}


class TripManager:
    def __init__(
        self,
        session: TripSession,
        store: KeyValueStore,
        settings: CoordinationSettings | None = None,
        clock: Clock = now_ms,
        background: BackgroundTasks | None = None,
        cas_max_attempts: int = 5,
    ):
        self.session = session
        self._store = store
        self._settings = settings or CoordinationSettings()
        self._clock = clock
        self._background = background or BackgroundTasks()
        self._cas_max_attempts = cas_max_attempts

    @property
    def trip_data(self) -> TripSessionState:
        return self.session.trip_data

    def start_trip(
        self,
        driver_id: str | None,
        driver_name: str | None,
        origin: str,
        destination: str,
        fare: float,
        duration: int | None = None,
    ) -> TripSessionState:
        """Materialize a trip session for this actor.

        An unassigned driver (``None``, ``"pending_driver"`` or the
        "Seeking Driver..." name) puts the session into driver search.
        """
        now = self._clock()
        session = self.session
        duration = duration or self._settings.default_trip_duration_seconds
        searching = needs_driver_search(driver_id, driver_name)

        session.active_taxi_trip = True
        session.needs_new_order = False
        if searching:
            session.is_searching_driver = True
            session.search_time_seconds = 0
            session.driver_found = False
        else:
            session.is_searching_driver = False
            session.driver_found = True

        session.trip_data = TripSessionState(
            is_active=True,
            start_time=now,
            end_time=now + duration * 1000,
            trip_duration=duration,
            driver_id=None if searching else str(driver_id),
            driver_name=None if searching else driver_name,
            origin=origin,
            destination=destination,
            fare=fare,
            status="waiting",
        )

        logger.info(f"Trip started: {origin} -> {destination}, driver={session.trip_data.driver_id}")
        self._background.spawn(self.save_trip_state(), name="save-trip-state")
        return session.trip_data

    def update_trip_status(self, status: SessionStatus) -> TripSessionState | None:
        """Set the session status; ``None`` when there is no active trip."""
        if status not in _SESSION_STATUSES:
            raise ValueError(f"Unknown session status {status!r}")

        trip = self.session.trip_data
        if not trip.is_active:
            return None

        trip.status = status
        if status in TERMINAL_SESSION_STATUSES:
            trip.is_active = False
            trip.end_time = self._clock()
            self.session.active_taxi_trip = False
            self.session.needs_new_order = True

        logger.info(f"Trip status updated: {status}")
        self._background.spawn(self.save_trip_state(), name="save-trip-state")
        return trip

    def get_remaining_time(self) -> int:
        """Seconds until the trip's end time, clamped at zero."""
        trip = self.session.trip_data
        if not trip.is_active or not trip.end_time:
            return 0
        return max(0, trip.end_time - self._clock()) // 1000

    def check_trip_active(self) -> bool:
        """Report whether a trip is active, promoting waiting -> active once the timer has run out."""
        trip = self.session.trip_data
        if trip.is_active and trip.end_time:
            if self._clock() > trip.end_time and trip.status == "waiting":
                trip.status = "active"
            return trip.is_active
        return False

    def is_trip_active(self) -> bool:
        return self.session.trip_data.is_active

    def cancel_trip(self, reason: str | None = None) -> bool:
        trip = self.session.trip_data
        if not trip.is_active:
            logger.info("No active trip to cancel")
            return False

        now = self._clock()
        cancellation = {
            "trip_id": str(trip.start_time) if trip.start_time else None,
            "reason": reason or "User cancelled trip",
            "trip_duration": (now - (trip.start_time or 0)) // 1000,
            "stage": trip.status,
        }
        logger.info(f"Trip cancelled: {cancellation}")

        self.session.clear_trip(status="cancelled", duration=self._settings.default_trip_duration_seconds)

        self._background.spawn(self._drop_open_requests(), name="drop-open-requests")
        self._background.spawn(self._reset_for_stored_user(), name="force-reset-after-cancel")
        return True

    def clear_cancelled_trip(self) -> None:
        """Drop the session after a trip was cancelled elsewhere (server or other actor)."""
        self.session.clear_trip(status="cancelled", duration=self._settings.default_trip_duration_seconds)
        self.session.is_searching_driver = False
        self.session.driver_found = False
        self.session.driver_location = None
        self.session.customer_location = None

    def start_order_flow(self) -> bool:
        """Reset the session to the "ready for a new order" baseline."""
        self.session.clear_trip(status=None, duration=self._settings.default_trip_duration_seconds)
        self.session.is_searching_driver = False
        self.session.search_time_seconds = 0
        self.session.driver_found = False
        logger.info("Trip data reset for new order flow")

        self._background.spawn(self._prune_closed_requests(), name="prune-closed-requests")
        self._background.spawn(self._reset_for_stored_user(), name="force-reset-before-order")
        return True

    async def get_active_trip_id(self) -> str | None:
        trip = self.session.trip_data
        if not (trip.is_active and trip.start_time):
            return None
        try:
            stored = await self._store.get(keys.ACTIVE_TRIP_ID)
        except Exception as e:
            logger.error(f"Error getting active trip ID: {e}")
            return None
        return stored or str(trip.start_time)

    async def drain(self) -> None:
        """Wait for outstanding background storage work."""
        await self._background.drain()

    # -- storage shadows ---------------------------------------------------

    async def save_trip_state(self) -> None:
        """Shadow the session into storage so it can be restored after a restart."""
        session = self.session
        try:
            await self._store.set(keys.GLOBAL_TRIP_DATA, encode(session.trip_data.model_dump(mode="json")))
            if session.pickup_coordinates:
                await self._store.set(
                    keys.GLOBAL_PICKUP_COORDINATES, encode(session.pickup_coordinates.model_dump())
                )
            if session.destination_coordinates:
                await self._store.set(
                    keys.GLOBAL_DESTINATION_COORDINATES,
                    encode(session.destination_coordinates.model_dump()),
                )
            if session.driver_location:
                await self._store.set(
                    keys.GLOBAL_DRIVER_LOCATION, encode(session.driver_location.model_dump(mode="json"))
                )
            if session.customer_location:
                await self._store.set(
                    keys.GLOBAL_CUSTOMER_LOCATION, encode(session.customer_location.model_dump(mode="json"))
                )
            await self._store.set(keys.GLOBAL_TRIP_FLAGS, encode(session.flags()))
            logger.debug("Saved trip session to storage")
        except Exception as e:
            logger.error(f"Error saving trip session: {e}")

    async def restore_trip_state(self, user_id: str) -> bool:
        """Restore the shadowed session if this user owns an active trip projection."""
        try:
            trip_json = await self._store.get(keys.GLOBAL_TRIP_DATA)
            if not trip_json:
                logger.info("No saved trip data found")
                return False

            customer_trip = decode(await self._store.get(keys.customer_active_trip(user_id)), dict)
            driver_trip = decode(await self._store.get(keys.driver_active_trip(user_id)), dict)
            projection = customer_trip or driver_trip
            if not projection:
                logger.info(f"No active trip found for user {user_id}, not restoring state")
                return False

            session = self.session
            session.trip_data = TripSessionState.model_validate(decode(trip_json, dict))
            session.active_taxi_trip = True
            session.needs_new_order = False
            await self._restore_shadows(projection)

            if customer_trip:
                driver_id = customer_trip.get("driverId")
                session.is_searching_driver = not driver_id or driver_id == PENDING_DRIVER_ID
                session.driver_found = bool(driver_id) and driver_id != PENDING_DRIVER_ID
                logger.info(f"Restored trip state for customer {user_id}")
            else:
                logger.info(f"Restored trip state for driver {user_id}")
            return True
        except Exception as e:
            logger.error(f"Error restoring trip state for {user_id}: {e}")
            return False

    async def _restore_shadows(self, projection: dict[str, Any]) -> None:
        session = self.session
        try:
            pickup = decode(await self._store.get(keys.GLOBAL_PICKUP_COORDINATES), dict)
            destination = decode(await self._store.get(keys.GLOBAL_DESTINATION_COORDINATES), dict)
            driver_location = decode(await self._store.get(keys.GLOBAL_DRIVER_LOCATION), dict)
            customer_location = decode(await self._store.get(keys.GLOBAL_CUSTOMER_LOCATION), dict)

            pickup = projection.get("pickupCoordinates") or pickup
            destination = projection.get("destinationCoordinates") or destination
            driver_location = projection.get("driverLocation") or driver_location
            customer_location = projection.get("customerLocation") or customer_location

            if pickup:
                session.pickup_coordinates = Coordinates.model_validate(pickup)
            if destination:
                session.destination_coordinates = Coordinates.model_validate(destination)
            if driver_location:
                session.driver_location = LocationInfo.model_validate(driver_location)
            if customer_location:
                session.customer_location = LocationInfo.model_validate(customer_location)
        except Exception as e:
            logger.error(f"Error restoring coordinates and location data: {e}")

    async def check_user_active_trip(self, user_id: str) -> bool:
        try:
            for key in (
                keys.customer_active_trip(user_id),
                keys.customer_active_request(user_id),
                keys.driver_active_trip(user_id),
            ):
                if await self._store.get(key):
                    logger.info(f"Found active trip data at key: {key}")
                    return True

            user_requests = await load_json(self._store, keys.customer_requests(user_id))
            if any(r.get("status") not in ("completed", "cancelled") for r in user_requests):
                logger.info(f"Found active request in {keys.customer_requests(user_id)}")
                return True

            return False
        except Exception as e:
            logger.error(f"Error checking for user active trip: {e}")
            return False

    async def force_reset_trip_state(self, user_id: str) -> None:
        """Clear every trace of a user's trip unless a recent one is still in flight."""
        try:
            projection = decode(await self._store.get(keys.customer_active_trip(user_id)), dict)
            last_updated = projection.get("lastUpdated") if isinstance(projection, dict) else None
            max_age_ms = self._settings.projection_max_age_seconds * 1000
            if last_updated and self._clock() - last_updated < max_age_ms:
                if projection.get("status") in ("accepted", "pending"):
                    logger.info(f"Found recent active trip for user {user_id}, preserving state")
                    return

            keys_to_remove = keys.user_projection_keys(user_id)

            shadow = decode(await self._store.get(keys.GLOBAL_TRIP_DATA), dict)
            if shadow and shadow.get("driver_id") == str(user_id):
                keys_to_remove.extend(keys.GLOBAL_SESSION_KEYS)
                self.session.clear_trip(status=None, duration=self._settings.default_trip_duration_seconds)
                self.session.is_searching_driver = False
                self.session.driver_found = False
            elif shadow:
                logger.info(f"Global trip data doesn't belong to user {user_id}, not clearing")

            try:
                await self._drop_user_requests(user_id)
            except Exception as e:
                logger.error(f"Error cleaning trip requests for {user_id}: {e}")
                keys_to_remove.append(keys.TAXI_REQUESTS)

            await self._store.multi_remove(keys_to_remove)
            logger.info(f"Trip state reset for user {user_id} ({len(keys_to_remove)} keys removed)")
        except Exception as e:
            logger.error(f"Error in force_reset_trip_state for {user_id}: {e}")

    # -- background registry cleanups ----------------------------------------

    async def _drop_open_requests(self) -> None:
        try:
            await update_json(
                self._store,
                keys.TAXI_REQUESTS,
                lambda requests: [r for r in requests if not _is_open(r)],
                max_attempts=self._cas_max_attempts,
            )
            logger.info("Cleaned up cancelled requests from storage")
        except Exception as e:
            logger.error(f"Error cleaning up trip data: {e}")

    async def _prune_closed_requests(self) -> None:
        try:
            await update_json(
                self._store,
                keys.TAXI_REQUESTS,
                lambda requests: [r for r in requests if _is_open(r)],
                max_attempts=self._cas_max_attempts,
            )
            logger.info("Cleared completed trip requests from storage")
        except Exception as e:
            logger.error(f"Error clearing completed requests: {e}")

    async def _drop_user_requests(self, user_id: str) -> None:
        uid = str(user_id)

        def drop(requests: list[dict[str, Any]]) -> Any:
            kept = [
                r
                for r in requests
                if str((r.get("customer") or {}).get("id")) != uid and r.get("driverId") != uid
            ]
            return kept if len(kept) != len(requests) else NO_CHANGE

        await update_json(self._store, keys.TAXI_REQUESTS, drop, max_attempts=self._cas_max_attempts)

    async def _reset_for_stored_user(self) -> None:
        try:
            user_id = await self._store.get(keys.USER_ID)
        except Exception as e:
            logger.error(f"Error getting userId for reset: {e}")
            return
        if user_id:
            await self.force_reset_trip_state(user_id)


__all__ = ["TripManager", "needs_driver_search"]
