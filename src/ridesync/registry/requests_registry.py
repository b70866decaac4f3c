"""Shared list of ride requests.

All requests live in one JSON list under ``taxiRequests``. Mutations go
through :func:`ridesync.storage.blob.update_json`, so concurrent drivers
accepting the same request cannot both win.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ConflictError, StorageError
from ..storage import KeyValueStore, keys
from ..storage.blob import NO_CHANGE, load_json, save_json, update_json
from ..trip import NewTripRequest, TripRequest, TripStatus
from ..utils.clock import Clock, now_ms

if TYPE_CHECKING:
    from ..session.manager import TripManager

logger = logging.getLogger(__name__)

ACCEPTED_TRIP_DURATION_SECONDS = 120


def _parse(requests: list[dict[str, Any]]) -> list[TripRequest]:
    parsed = []
    for raw in requests:
        try:
            parsed.append(TripRequest.from_storage(raw))
        except ValueError as e:
            logger.warning(f"Skipping malformed trip request {raw.get('id')!r}: {e}")
    return parsed


def _has_role(user: dict[str, Any], role: str) -> bool:
    roles = user.get("role") or user.get("roles") or ""
    if isinstance(roles, str):
        roles = roles.split(",")
    return role in {str(r).strip().lower() for r in roles}


class TripRequestRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        trip_manager: "TripManager | None" = None,
        clock: Clock = now_ms,
        cas_max_attempts: int = 5,
    ):
        self._store = store
        self._trip_manager = trip_manager
        self._clock = clock
        self._cas_max_attempts = cas_max_attempts

    def bind_trip_manager(self, trip_manager: "TripManager") -> None:
        self._trip_manager = trip_manager

    async def _load(self) -> list[TripRequest]:
        return _parse(await load_json(self._store, keys.TAXI_REQUESTS))

    async def _update(self, mutate: Callable[[list[dict[str, Any]]], Any]) -> Any:
        return await update_json(
            self._store,
            keys.TAXI_REQUESTS,
            mutate,
            max_attempts=self._cas_max_attempts,
        )

    async def get_requests(self) -> list[TripRequest]:
        """Requests still waiting for a driver."""
        try:
            return [r for r in await self._load() if r.status is TripStatus.PENDING and r.driver_id is None]
        except StorageError as e:
            logger.error(f"Error getting trip requests: {e}")
            return []

    async def get_all_requests(self) -> list[TripRequest]:
        try:
            return await self._load()
        except StorageError as e:
            logger.error(f"Error getting all trip requests: {e}")
            return []

    async def get_request_by_id(self, request_id: str) -> TripRequest | None:
        if not request_id:
            return None
        for request in await self.get_all_requests():
            if request.id == request_id:
                return request
        return None

    async def get_user_active_request(self, user_id: str) -> TripRequest | None:
        """The open request the authenticated user takes part in.

        Drivers get the accepted request assigned to them; customers get
        their own pending or accepted request. Asking on behalf of anyone
        other than the stored user yields ``None``.
        """
        try:
            user = await load_json(self._store, keys.USER_DATA, dict)
            if not user or str(user.get("id")) != str(user_id):
                logger.error(f"Security alert: attempt to access trip data for user {user_id}")
                return None

            requests = await self._load()
            if _has_role(user, "driver"):
                found = next(
                    (r for r in requests if r.status is TripStatus.ACCEPTED and r.is_assigned_to(user_id)),
                    None,
                )
                if found is not None and not found.is_assigned_to(user["id"]):
                    logger.error(f"Security alert: trip {found.id} is not assigned to driver {user_id}")
                    return None
            else:
                found = next(
                    (r for r in requests if r.is_owned_by(user_id) and r.status.is_open),
                    None,
                )
                if found is not None and not found.is_owned_by(user["id"]):
                    logger.error(f"Security alert: trip {found.id} does not belong to user {user_id}")
                    return None
            return found
        except StorageError as e:
            logger.error(f"Error getting user active request: {e}")
            return None

    async def create_request(self, new: NewTripRequest) -> TripRequest | None:
        """Append a pending request with a fresh ``req_<ms>`` id."""
        created: TripRequest | None = None

        def append(requests: list[dict[str, Any]]) -> list[dict[str, Any]]:
            nonlocal created
            now = self._clock()
            taken = {r.get("id") for r in requests}
            stamp = now
            while f"req_{stamp}" in taken:
                stamp += 1
            created = TripRequest(
                id=f"req_{stamp}",
                customer=new.customer,
                pickup=new.pickup,
                destination=new.destination,
                fare=new.fare,
                distance_km=new.distance_km,
                tariff=new.tariff,
                timestamp=now,
                status=TripStatus.PENDING,
                driver_id=None,
            )
            return [*requests, created.to_storage()]

        try:
            await self._update(append)
        except (StorageError, ConflictError) as e:
            logger.error(f"Error creating trip request: {e}")
            return None

        logger.info(f"Trip request {created.id} created for customer {created.customer_id}")
        return created

    async def accept_request(self, request_id: str, driver_id: str, driver_name: str) -> TripRequest | None:
        """Assign a pending request to a driver and start the trip session.

        Returns ``None`` when the request is missing, no longer pending, or
        another driver got there first.
        """
        accepted: TripRequest | None = None

        def accept(requests: list[dict[str, Any]]) -> Any:
            nonlocal accepted
            accepted = None
            for index, raw in enumerate(requests):
                if raw.get("id") != request_id:
                    continue
                request = TripRequest.from_storage(raw)
                if request.status is not TripStatus.PENDING:
                    logger.info(f"Trip request {request_id} is {request.status.value}, cannot accept")
                    return NO_CHANGE
                accepted = request.model_copy(update={"status": TripStatus.ACCEPTED, "driver_id": str(driver_id)})
                updated = list(requests)
                updated[index] = accepted.to_storage()
                return updated
            logger.info(f"Trip request {request_id} not found")
            return NO_CHANGE

        try:
            await self._update(accept)
        except (StorageError, ConflictError, ValueError) as e:
            logger.error(f"Error accepting trip request {request_id}: {e}")
            return None

        if accepted is None:
            return None

        logger.info(f"Trip request {request_id} accepted by driver {driver_id}")
        if self._trip_manager is not None:
            self._trip_manager.start_trip(
                driver_id=str(driver_id),
                driver_name=driver_name,
                origin=accepted.pickup.name,
                destination=accepted.destination.name,
                fare=accepted.fare,
                duration=ACCEPTED_TRIP_DURATION_SECONDS,
            )
        return accepted

    async def transition_request(
        self, request_id: str, status: TripStatus | str, **changes: Any
    ) -> TripRequest | None:
        """Move a request to ``status`` against the currently stored record.

        ``changes`` are extra fields written together with the status.
        Returns the record as stored afterwards, or ``None`` when the request
        is missing or cannot move from its current status.
        """
        status = TripStatus.from_api(status)
        result: TripRequest | None = None

        def set_status(requests: list[dict[str, Any]]) -> Any:
            nonlocal result
            result = None
            for index, raw in enumerate(requests):
                if raw.get("id") != request_id:
                    continue
                request = TripRequest.from_storage(raw)
                if request.status is status:
                    result = request
                    return NO_CHANGE
                if not request.status.can_transition_to(status):
                    logger.warning(
                        f"Trip request {request_id} cannot move from {request.status.value} to {status.value}"
                    )
                    return NO_CHANGE
                result = request.model_copy(update={**changes, "status": status})
                updated = list(requests)
                updated[index] = result.to_storage()
                return updated
            logger.info(f"Trip request {request_id} not found")
            return NO_CHANGE

        try:
            await self._update(set_status)
        except (StorageError, ConflictError, ValueError) as e:
            logger.error(f"Error updating trip request {request_id}: {e}")
            return None
        return result

    async def archive_request(self, request_id: str) -> TripRequest | None:
        """Mark a request completed and moved to history, unless it was cancelled."""
        result: TripRequest | None = None

        def archive(requests: list[dict[str, Any]]) -> Any:
            nonlocal result
            result = None
            for index, raw in enumerate(requests):
                if raw.get("id") != request_id:
                    continue
                request = TripRequest.from_storage(raw)
                if request.status is TripStatus.CANCELLED:
                    logger.warning(f"Trip request {request_id} is cancelled, not archiving")
                    return NO_CHANGE
                result = request.model_copy(update={"status": TripStatus.COMPLETED, "in_history": True})
                updated = list(requests)
                updated[index] = result.to_storage()
                return updated
            return NO_CHANGE

        try:
            await self._update(archive)
        except (StorageError, ConflictError, ValueError) as e:
            logger.error(f"Error archiving trip request {request_id}: {e}")
            return None
        return result

    async def update_request_status(self, request_id: str, status: TripStatus | str) -> bool:
        """Set a request's status and confirm the write landed.

        Moves out of ``completed`` or ``cancelled`` are refused.
        """
        if not request_id:
            logger.error("Cannot update trip request status without an id")
            return False
        status = TripStatus.from_api(status)

        if await self.transition_request(request_id, status) is None:
            return False
        try:
            stored = await self.get_request_by_id(request_id)
        except (StorageError, ConflictError) as e:
            logger.error(f"Error updating trip request {request_id}: {e}")
            return False

        if stored is None:
            logger.error(f"Trip request {request_id} not found")
            return False
        if stored.status is not status:
            logger.error(f"Trip request {request_id} status is {stored.status.value} after writing {status.value}")
            return False

        logger.info(f"Trip request {request_id} status set to {status.value}")
        return True

    async def replace_request(self, request: TripRequest) -> bool:
        """Overwrite one request in place, or append it if the id is new."""
        record = request.to_storage()

        def replace(requests: list[dict[str, Any]]) -> list[dict[str, Any]]:
            for index, raw in enumerate(requests):
                if raw.get("id") == request.id:
                    updated = list(requests)
                    updated[index] = record
                    return updated
            return [*requests, record]

        try:
            await self._update(replace)
            return True
        except (StorageError, ConflictError) as e:
            logger.error(f"Error saving trip request {request.id}: {e}")
            return False

    async def retain(self, predicate: Callable[[TripRequest], bool]) -> int:
        """Keep only requests matching ``predicate``; returns how many were dropped."""
        dropped = 0

        def keep(requests: list[dict[str, Any]]) -> Any:
            nonlocal dropped
            kept = [raw for raw, parsed in zip(requests, _parse_each(requests)) if parsed is None or predicate(parsed)]
            dropped = len(requests) - len(kept)
            return kept if dropped else NO_CHANGE

        try:
            await self._update(keep)
        except (StorageError, ConflictError) as e:
            logger.error(f"Error pruning trip requests: {e}")
            return 0
        return dropped

    async def save_all(self, requests: list[TripRequest]) -> None:
        await save_json(self._store, keys.TAXI_REQUESTS, [r.to_storage() for r in requests])

    async def clear_all_requests(self) -> bool:
        try:
            await self._store.remove(keys.TAXI_REQUESTS)
            logger.info("All trip requests cleared")
            return True
        except StorageError as e:
            logger.error(f"Error clearing trip requests: {e}")
            return False


def _parse_each(requests: list[dict[str, Any]]) -> list[TripRequest | None]:
    result: list[TripRequest | None] = []
    for raw in requests:
        try:
            result.append(TripRequest.from_storage(raw))
        except ValueError:
            result.append(None)
    return result
