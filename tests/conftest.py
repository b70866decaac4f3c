import os

# Settings() must be constructible without a real environment.
os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest

from ridesync.broadcast import EventBroadcastLog
from ridesync.location import TripLocationService
from ridesync.registry import TripRequestRegistry
from ridesync.session import TripManager, TripSession
from ridesync.settings import CoordinationSettings
from ridesync.storage import InMemoryKeyValueStore
from ridesync.trip import Coordinates, Customer, NewTripRequest, Place
from ridesync.utils.async_helpers import BackgroundTasks

START_MS = 1_718_000_000_000

ALMATY_ABAYA = Coordinates(latitude=43.2380, longitude=76.9450)
ALMATY_DOSTYK = Coordinates(latitude=43.2330, longitude=76.9570)


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def coordination_settings() -> CoordinationSettings:
    return CoordinationSettings()


@pytest.fixture
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
def session() -> TripSession:
    return TripSession()


@pytest.fixture
def trip_manager(session, store, coordination_settings, clock, background) -> TripManager:
    return TripManager(session, store, coordination_settings, clock=clock, background=background)


@pytest.fixture
def registry(store, trip_manager, clock) -> TripRequestRegistry:
    return TripRequestRegistry(store, trip_manager, clock=clock)


@pytest.fixture
def broadcast_log(store, clock) -> EventBroadcastLog:
    return EventBroadcastLog(store, clock=clock)


@pytest.fixture
def location_service(store, registry, broadcast_log, coordination_settings, clock, background) -> TripLocationService:
    return TripLocationService(
        store, registry, broadcast_log, coordination_settings, clock=clock, background=background
    )


@pytest.fixture
def new_trip() -> NewTripRequest:
    return NewTripRequest(
        customer=Customer(id="c1", name="Ержан"),
        pickup=Place(name="Абая 44, Алматы", coordinates=ALMATY_ABAYA),
        destination=Place(name="Достык 132, Алматы", coordinates=ALMATY_DOSTYK),
        fare=1500,
    )
