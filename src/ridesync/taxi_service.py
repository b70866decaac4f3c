"""Trip operations that keep the server and local state in step.

Each operation tries the trip API, then applies the same mutation to the
local registry, projections, session and broadcast log, and returns the
locally consistent result. ``ServiceResult.source`` says whether the
server confirmed it.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from .api import DEMO_TRIP_IDS, DataSource, ServiceResult, TokenProvider, TripApiClient, demo_trips, is_driver_token
from .api.client import parse_api_trip
from .broadcast import TRIP_ACCEPTED, TRIP_CREATED, BroadcastEvent, EventBroadcastLog
from .core.exceptions import AuthenticationError, ConflictError, CoordinationError, NotFoundError, StorageError
from .geo import trip_distance_km
from .location import EtaEstimate, LocationUpdate, Role, TripLocations, TripLocationService
from .registry import TripRequestRegistry
from .session import TripManager
from .storage import KeyValueStore, keys
from .storage.blob import NO_CHANGE, decode, encode, update_json
from .trip import NewTripRequest, TripRequest, TripStatus, to_api_status
from .trip_logging import log_trip_context
from .utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)

DEFAULT_TARIFF_ID = 1


class DriverInfo(BaseModel):
    id: str | None = None
    name: str | None = None
    car: str | None = None
    license_plate: str | None = None


class AuthStatus(BaseModel):
    is_authenticated: bool
    message: str
    user_id: int | str | None = None


def customer_projection(trip: TripRequest, driver_name: str | None, now: int) -> dict[str, Any]:
    """Summary written to ``active_trip_<customerId>`` for the customer's screens."""
    return {
        "tripId": trip.id,
        "driverId": trip.driver_id,
        "driverName": driver_name or "Driver",
        "pickupAddress": trip.pickup.name,
        "pickupCoordinates": trip.pickup.coordinates.model_dump(),
        "destinationAddress": trip.destination.name,
        "destinationCoordinates": trip.destination.coordinates.model_dump(),
        "fare": trip.fare,
        "status": trip.status.value,
        "timestamp": trip.timestamp,
        "lastUpdated": now,
    }


class TaxiService:
    def __init__(
        self,
        store: KeyValueStore,
        tokens: TokenProvider,
        client: TripApiClient,
        registry: TripRequestRegistry,
        trip_manager: TripManager,
        locations: TripLocationService,
        broadcast_log: EventBroadcastLog,
        clock: Clock = now_ms,
    ):
        self._store = store
        self.tokens = tokens
        self.client = client
        self.registry = registry
        self.trip_manager = trip_manager
        self.locations = locations
        self.broadcast_log = broadcast_log
        self._clock = clock
        locations.set_location_sync(self._sync_location)

    # -- trip lifecycle --------------------------------------------------------

    async def create_trip(
        self, new: NewTripRequest, tariff_id: int = DEFAULT_TARIFF_ID
    ) -> ServiceResult[TripRequest | None]:
        if new.distance_km is None:
            pickup, destination = new.pickup.coordinates, new.destination.coordinates
            new = new.model_copy(
                update={
                    "distance_km": trip_distance_km(
                        pickup.latitude, pickup.longitude, destination.latitude, destination.longitude
                    )
                }
            )

        body = {
            "user_id": new.customer.id,
            "tariff_id": tariff_id,
            "from_address": new.pickup.name,
            "to_address": new.destination.name,
            "distance_km": new.distance_km,
            "price": new.fare,
        }
        token = await self.tokens.get_token()
        if not token:
            logger.warning("No auth token available, trying request without authentication")

        try:
            data = await self.client.create_trip(body, token)
            trip = parse_api_trip(
                data,
                fallback_timestamp=self._clock(),
                customer_name=new.customer.name,
                pickup=new.pickup.coordinates,
                destination=new.destination.coordinates,
            ).model_copy(update={"driver_id": None})
        except (CoordinationError, KeyError, ValueError) as e:
            logger.error(f"Error creating trip with API, falling back to local request: {e}")
            trip = await self.registry.create_request(new)
            if trip is not None:
                await self.broadcast_log.broadcast_trip_update(TRIP_CREATED, trip.to_storage())
            return ServiceResult(trip, DataSource.LOCAL, error=str(e))

        with log_trip_context(trip.id):
            await self.registry.replace_request(trip)
            await self.broadcast_log.broadcast_trip_update(TRIP_CREATED, trip.to_storage())
            logger.info(f"Trip {trip.id} created on server for customer {trip.customer_id}")
        return ServiceResult(trip, DataSource.LIVE)

    async def accept_trip(self, trip_id: str, driver: DriverInfo) -> ServiceResult[TripRequest | None]:
        """Assign the trip to ``driver``.

        Returns ``None`` as value when the trip is unknown or another driver
        accepted it first.
        """
        with log_trip_context(trip_id, driver_id=driver.id):
            logger.info(f"Driver {driver.name or 'Unknown'} is accepting trip {trip_id}")
            token = await self.tokens.get_token()

            trip = await self.registry.get_request_by_id(trip_id)
            if trip is None:
                logger.info("Trip not found locally, checking available trips")
                pending = await self.get_pending_trips()
                trip = next((t for t in pending.value if t.id == trip_id), None)
                if trip is None:
                    logger.error("Trip not found on server or locally")
                    return ServiceResult(None, pending.source)
                await self.registry.replace_request(trip)

            driver_id = driver.id or f"driver_{self._clock()}"
            driver_name = driver.name or "Driver"
            accepted = await self.registry.accept_request(trip_id, driver_id, driver_name)
            if accepted is None:
                logger.info("Trip could not be accepted (missing or already taken)")
                return ServiceResult(None, DataSource.LOCAL)

            await self._write_acceptance_projections(accepted, driver_name)

            source = DataSource.DEMO if trip_id in DEMO_TRIP_IDS else DataSource.LOCAL
            if token:
                acceptance = {
                    "trip_id": trip_id,
                    "driver_id": driver_id,
                    "driver_name": driver_name,
                    "car_model": driver.car or "Not specified",
                    "license_plate": driver.license_plate or "Not specified",
                }
                if await self.client.accept_trip(trip_id, acceptance, token):
                    source = DataSource.LIVE
            else:
                logger.info("No token available, skipping server update")

            await self.broadcast_log.broadcast_trip_update(TRIP_ACCEPTED, accepted.to_storage())
            return ServiceResult(accepted, source)

    async def _write_acceptance_projections(self, trip: TripRequest, driver_name: str) -> None:
        record = encode(trip.to_storage())
        try:
            await self._store.set(keys.driver_active_trip(trip.driver_id), record)
            await self._store.set(
                keys.customer_active_trip(trip.customer_id),
                encode(customer_projection(trip, driver_name, self._clock())),
            )
            await self._store.set(keys.customer_active_request(trip.customer_id), record)
            logger.info(f"Saved active trip projections for driver {trip.driver_id} and customer {trip.customer_id}")
        except StorageError as e:
            logger.error(f"Error writing active trip projections: {e}")

    async def update_trip_status(self, trip_id: str, status: str) -> ServiceResult[TripRequest]:
        """Move a trip to ``status`` everywhere it is projected.

        A move the status table does not allow (anything out of
        ``completed`` or ``cancelled``) is refused before the API is called;
        the result then carries the unchanged trip and an ``error``.

        Raises:
            NotFoundError: the trip is not in the local registry.
        """
        with log_trip_context(trip_id):
            logger.info(f"Updating trip status: {trip_id} to {status}")
            trip = await self.registry.get_request_by_id(trip_id)
            if trip is None:
                raise NotFoundError("Trip not found in local storage", {"trip_id": trip_id})

            new_status = TripStatus.from_api(status)
            if not trip.status.can_transition_to(new_status):
                message = f"Trip {trip_id} cannot move from {trip.status.value} to {new_status.value}"
                logger.warning(message)
                return ServiceResult(trip, DataSource.LOCAL, error=message)

            source = DataSource.LOCAL
            token = await self.tokens.get_token()
            if token:
                try:
                    await self.client.update_trip_status(trip_id, to_api_status(status), token)
                    source = DataSource.LIVE
                except CoordinationError as e:
                    logger.error(f"Error updating trip status on server: {e}")

            # Applied to the stored record, which may have changed during the API call.
            updated = await self.registry.transition_request(
                trip_id, new_status, updated_at=datetime.now(UTC).isoformat()
            )
            if updated is None:
                current = await self.registry.get_request_by_id(trip_id) or trip
                message = f"Trip {trip_id} is now {current.status.value}, {new_status.value} was not applied"
                logger.warning(message)
                return ServiceResult(current, source, error=message)
            await self._write_status_projections(updated)

            await self.broadcast_log.broadcast_trip_event(
                f"trip_{status.lower()}",
                trip_id,
                driver_id=updated.driver_id or "unknown",
                driver_name="Driver",
                customer_id=updated.customer_id,
            )

            if new_status.is_terminal and self.trip_manager.is_trip_active():
                self.trip_manager.update_trip_status(new_status.value)

            return ServiceResult(updated, source)

    async def _write_status_projections(self, trip: TripRequest) -> None:
        customer_id = trip.customer_id
        record = trip.to_storage()

        def replace_in_customer_list(requests: list[dict[str, Any]]) -> Any:
            if not any(r.get("id") == trip.id for r in requests):
                return NO_CHANGE
            return [record if r.get("id") == trip.id else r for r in requests]

        try:
            await update_json(self._store, keys.customer_requests(customer_id), replace_in_customer_list)

            active_key = keys.customer_active_trip(customer_id)
            active = decode(await self._store.get(active_key), lambda: None)
            if isinstance(active, dict):
                active["status"] = trip.status.value
                active["lastUpdated"] = self._clock()
                await self._store.set(active_key, encode(active))

            await self._store.set(keys.customer_active_request(customer_id), encode(record))

            if trip.driver_id:
                driver_key = keys.driver_active_trip(trip.driver_id)
                if trip.status.is_terminal:
                    await self._store.remove(driver_key)
                else:
                    await self._store.set(driver_key, encode(record))
        except (StorageError, ConflictError) as e:
            logger.error(f"Error updating trip projections for {trip.id}: {e}")

    async def cancel_trip(self, trip_id: str) -> bool:
        with log_trip_context(trip_id):
            token = await self.tokens.get_token()
            if not token:
                logger.error("No auth token available for cancel trip")
                return False

            try:
                await self.client.cancel_trip(trip_id, token)
                logger.info("Trip cancelled via API")
            except CoordinationError as e:
                logger.error(f"API cancel failed, continuing with local cancellation: {e}")

            try:
                result = await self.update_trip_status(trip_id, "cancelled")
            except NotFoundError:
                logger.info("Trip not found locally, resetting session")
                self.trip_manager.clear_cancelled_trip()
                return True

            trip = result.value
            if trip.status is not TripStatus.CANCELLED:
                logger.warning(f"Trip is {trip.status.value}, keeping it")
                return False
            driver_id = trip.driver_id or "unknown"
            try:
                await self._store.multi_remove(keys.customer_trip_keys(trip.customer_id))
                if trip.driver_id:
                    await self._store.remove(keys.driver_active_trip(trip.driver_id))
            except StorageError as e:
                logger.error(f"Error clearing trip projections: {e}")

            await self.registry.retain(lambda r: r.id != trip_id or not r.status.is_open)
            self.trip_manager.clear_cancelled_trip()

            await self.broadcast_log.broadcast_trip_event(
                TripStatus.CANCELLED.to_event_type(),
                trip_id,
                driver_id=driver_id,
                driver_name="Unknown Driver",
                customer_id=trip.customer_id,
            )
            return True

    async def send_trip_to_history(self, trip_id: str) -> bool:
        token = await self.tokens.get_token()
        if not token:
            logger.error("No auth token available for sending trip to history")
            return False

        with log_trip_context(trip_id):
            archived = await self.client.send_trip_to_history(trip_id, token)

            if await self.registry.archive_request(trip_id) is not None:
                logger.info("Trip marked as history locally")
            return archived

    # -- queries ---------------------------------------------------------------

    async def get_pending_trips(self) -> ServiceResult[list[TripRequest]]:
        """Trips a driver can take, or the demo set when the API is unusable."""
        token = await self.tokens.get_token()
        if not token:
            logger.info("No auth token available, returning demo trips")
            return ServiceResult(demo_trips(self._clock), DataSource.DEMO)
        if is_driver_token(token):
            logger.info("Using demo driver token, returning demo trips")
            return ServiceResult(demo_trips(self._clock), DataSource.DEMO)

        try:
            records = await self.client.get_available_trips(token)
            now = self._clock()
            trips = [parse_api_trip(r, fallback_timestamp=now).model_copy(update={"driver_id": None}) for r in records]
        except AuthenticationError as e:
            logger.warning(f"Unauthorized, falling back to demo trips: {e}")
            return ServiceResult(demo_trips(self._clock), DataSource.DEMO, error=str(e))
        except (CoordinationError, KeyError, ValueError) as e:
            logger.error(f"Error getting available trips: {e}")
            return ServiceResult(demo_trips(self._clock), DataSource.DEMO, error=str(e))

        return ServiceResult(trips, DataSource.LIVE)

    async def get_trip_history(self) -> ServiceResult[list[dict[str, Any]]]:
        token = await self.tokens.get_token()
        if not token:
            logger.info("No auth token found for trip history")
            return ServiceResult([], DataSource.LOCAL)
        try:
            return ServiceResult(await self.client.get_trip_history(token), DataSource.LIVE)
        except CoordinationError as e:
            logger.error(f"Error fetching trip history: {e}")
            return ServiceResult([], DataSource.LOCAL, error=str(e))

    async def check_auth(self) -> AuthStatus:
        token = await self.tokens.get_token()
        if not token:
            return AuthStatus(is_authenticated=False, message="No authentication token found")
        try:
            data = await self.client.check_auth(token)
        except AuthenticationError as e:
            return AuthStatus(is_authenticated=False, message=f"Authentication failed: {e}")
        except CoordinationError as e:
            return AuthStatus(is_authenticated=False, message=f"Error checking authentication: {e}")
        return AuthStatus(
            is_authenticated=True,
            message="Authentication successful",
            user_id=(data.get("user") or {}).get("id"),
        )

    async def get_driver_active_trip(self) -> TripRequest | None:
        token = await self.tokens.get_token()
        if not token:
            logger.info("No auth token for getting active trip")
            return None

        driver_id = await self.tokens.get_driver_id(token)
        try:
            raw = decode(await self._store.get(keys.driver_active_trip(driver_id)), lambda: None)
            if raw:
                return TripRequest.from_storage(raw)
        except (StorageError, ValueError) as e:
            logger.error(f"Error reading driver active trip: {e}")

        trip = next(
            (
                r
                for r in await self.registry.get_all_requests()
                if r.is_assigned_to(driver_id) and r.status is TripStatus.ACCEPTED
            ),
            None,
        )
        if trip is None:
            logger.info(f"No active trip found for driver {driver_id}")
            return None

        await self._store.set(keys.driver_active_trip(driver_id), encode(trip.to_storage()))
        return trip

    async def get_user_active_trip(self) -> TripRequest | None:
        token = await self.tokens.get_token()
        if not token:
            logger.info("No auth token for getting user active trip")
            return None
        user_id = await self.tokens.get_user_id()
        if not user_id:
            logger.info("No user id found")
            return None

        try:
            data = await self.client.get_active_trip(token)
            if data:
                return parse_api_trip(data, fallback_timestamp=self._clock())
        except (CoordinationError, KeyError, ValueError) as e:
            logger.info(f"Error fetching active trip from API, falling back to local storage: {e}")

        request_key = keys.customer_active_request(user_id)
        try:
            raw = decode(await self._store.get(request_key), lambda: None)
            if raw:
                return TripRequest.from_storage(raw)
        except (StorageError, ValueError) as e:
            logger.error(f"Error reading user active request: {e}")

        trip = next(
            (r for r in await self.registry.get_all_requests() if r.is_owned_by(user_id) and r.status.is_open),
            None,
        )
        if trip is None:
            logger.info("No active trip found for user")
            return None

        await self._store.set(request_key, encode(trip.to_storage()))
        return trip

    async def get_latest_events(self, since: int = 0) -> list[BroadcastEvent]:
        return await self.broadcast_log.get_latest_events(since)

    async def get_trip_events_for_user(self, user_id: str, since: int = 0) -> list[BroadcastEvent]:
        return await self.broadcast_log.get_trip_events_for_user(user_id, since)

    # -- locations ---------------------------------------------------------------

    async def update_user_location(
        self, user_id: str | int, role: Role, location: dict[str, Any], trip_id: str | None = None
    ) -> bool:
        return await self.locations.update_user_location(user_id, role, location, trip_id)

    async def get_user_location(self, user_id: str | int, role: Role) -> LocationUpdate | None:
        return await self.locations.get_user_location(user_id, role)

    async def get_user_location_history(self, user_id: str | int, role: Role) -> list[LocationUpdate]:
        return await self.locations.get_user_location_history(user_id, role)

    async def get_trip_locations(self, trip_id: str) -> TripLocations:
        return await self.locations.get_trip_locations(trip_id)

    async def calculate_eta(self, trip_id: str) -> EtaEstimate:
        return await self.locations.calculate_eta(trip_id)

    async def _sync_location(self, update: LocationUpdate) -> None:
        token = await self.tokens.get_token()
        if token:
            await self.client.update_location(update, token)
