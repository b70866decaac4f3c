import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..session.state import LocationInfo, TripSession
from ..trip import Coordinates
from ..utils.clock import Clock, now_ms
from .models import Role
from .service import TripLocationService

logger = logging.getLogger(__name__)

# Returns a fix like {"latitude", "longitude", "speed", "heading", "accuracy", "timestamp"} or None
LocationProvider = Callable[[], Awaitable[dict[str, Any] | None]]

DEFAULT_SAMPLE_INTERVAL_SECONDS = 3.0


class LocationSampler:
    """Periodically pulls a position fix and records it for one actor."""

    def __init__(
        self,
        service: TripLocationService,
        session: TripSession,
        provider: LocationProvider,
        user_id: str,
        role: Role,
        trip_id: str | None = None,
        interval: float = DEFAULT_SAMPLE_INTERVAL_SECONDS,
        clock: Clock = now_ms,
    ):
        self._service = service
        self._session = session
        self._provider = provider
        self.user_id = user_id
        self.role = role
        self.trip_id = trip_id
        self._interval = interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sample_once(self) -> bool:
        fix = await self._provider()
        if not fix:
            return False

        fix = {
            "latitude": fix.get("latitude"),
            "longitude": fix.get("longitude"),
            "speed": fix.get("speed") or 0,
            "heading": fix.get("heading") or 0,
            "accuracy": fix.get("accuracy") or 0,
            "timestamp": fix.get("timestamp") or self._clock(),
        }
        if not await self._service.update_user_location(self.user_id, self.role, fix, self.trip_id):
            return False

        self._mirror(fix)
        return True

    def _mirror(self, fix: dict[str, Any]) -> None:
        info = LocationInfo(
            coordinates=Coordinates(latitude=fix["latitude"], longitude=fix["longitude"]),
            timestamp=fix["timestamp"],
            speed=fix["speed"],
            heading=fix["heading"],
            accuracy=fix["accuracy"],
        )
        trip = self._session.trip_data
        if self.role == "driver":
            self._session.driver_location = info
            if trip.is_active:
                trip.driver_location = info
        else:
            self._session.customer_location = info
            if trip.is_active:
                trip.customer_location = info
        if trip.is_active:
            trip.last_location_update = self._clock()

    async def _run(self) -> None:
        while True:
            try:
                await self.sample_once()
            except Exception as e:
                logger.error(f"Location sampling failed for {self.role} {self.user_id}: {e}")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"location-sampler-{self.role}")
        logger.info(f"Location tracking started for {self.role}")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("Location tracking stopped")
