"""Command-line entry point and object wiring.

    python -m ridesync pending
    python -m ridesync events --user-id 42
    python -m ridesync eta req_1718000000000
"""

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from dataclasses import dataclass

import redis.asyncio as aioredis

from .api import TokenProvider, TripApiClient
from .broadcast import BroadcastEvent, EventBroadcastLog, EventPoller, EventPublisher, NoopEventPublisher
from .broadcast.publisher import RedisEventPublisher
from .location import TripLocationService
from .logging_setup import setup_logging
from .registry import TripRequestRegistry
from .session import TripManager, TripSession
from .settings import Settings, get_settings
from .storage import KeyValueStore, create_store
from .taxi_service import TaxiService
from .utils.async_helpers import BackgroundTasks
from .utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)


@dataclass
class Coordinator:
    """Everything one actor (customer or driver app instance) needs."""

    settings: Settings
    store: KeyValueStore
    session: TripSession
    trip_manager: TripManager
    registry: TripRequestRegistry
    broadcast_log: EventBroadcastLog
    locations: TripLocationService
    taxi_service: TaxiService
    background: BackgroundTasks

    async def aclose(self) -> None:
        await self.background.drain()
        await self.taxi_service.client.close()
        await self.broadcast_log.publisher.close()
        await self.store.close()


def create_event_publisher(settings: Settings) -> EventPublisher:
    """Redis pub/sub when storage is Redis, otherwise pollers only."""
    if settings.storage.backend != "redis":
        return NoopEventPublisher()
    client = aioredis.Redis(
        host=settings.storage.redis_host,
        port=settings.storage.redis_port,
        db=settings.storage.redis_db,
        password=settings.storage.redis_password or None,
        decode_responses=True,
    )
    return RedisEventPublisher(client)


def build_coordinator(
    settings: Settings,
    store: KeyValueStore | None = None,
    api_client: TripApiClient | None = None,
    publisher: EventPublisher | None = None,
    clock: Clock = now_ms,
) -> Coordinator:
    store = store or create_store(settings.storage)
    coordination = settings.coordination
    cas_attempts = settings.storage.cas_max_attempts
    background = BackgroundTasks()

    session = TripSession()
    trip_manager = TripManager(
        session, store, coordination, clock=clock, background=background, cas_max_attempts=cas_attempts
    )
    registry = TripRequestRegistry(store, trip_manager, clock=clock, cas_max_attempts=cas_attempts)
    broadcast_log = EventBroadcastLog(
        store,
        publisher or create_event_publisher(settings),
        capacity=coordination.broadcast_capacity,
        clock=clock,
        cas_max_attempts=cas_attempts,
    )
    locations = TripLocationService(
        store, registry, broadcast_log, coordination, clock=clock, background=background
    )
    taxi_service = TaxiService(
        store,
        TokenProvider(store),
        api_client or TripApiClient(settings.api),
        registry,
        trip_manager,
        locations,
        broadcast_log,
        clock=clock,
    )
    return Coordinator(
        settings=settings,
        store=store,
        session=session,
        trip_manager=trip_manager,
        registry=registry,
        broadcast_log=broadcast_log,
        locations=locations,
        taxi_service=taxi_service,
        background=background,
    )


async def _print_event(event: BroadcastEvent) -> None:
    print(f"{event.timestamp} {event.type} trip={event.subject_trip_id} id={event.event_id}")


async def run_pending(coordinator: Coordinator) -> int:
    result = await coordinator.taxi_service.get_pending_trips()
    print(f"source: {result.source.value}")
    for trip in result.value:
        print(f"{trip.id}\t{trip.pickup.name} -> {trip.destination.name}\t{trip.fare:g}")
    return 0


async def run_events(coordinator: Coordinator, user_id: str | None) -> int:
    poller = EventPoller(
        coordinator.broadcast_log,
        _print_event,
        user_id=user_id,
        interval=coordinator.settings.coordination.poll_interval_seconds,
    )
    poller.start()
    try:
        await asyncio.Event().wait()
    finally:
        await poller.stop()
    return 0


async def run_eta(coordinator: Coordinator, trip_id: str) -> int:
    eta = await coordinator.taxi_service.calculate_eta(trip_id)
    if eta.eta_seconds is None:
        print(f"No ETA for trip {trip_id}: trip or driver location unknown")
        return 1
    print(f"eta_seconds={eta.eta_seconds} distance_km={eta.distance_remaining} arrived={eta.has_arrived}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ridesync", description="Trip coordination tools")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("pending", help="List trips a driver can accept")

    events = sub.add_parser("events", help="Poll the broadcast log and print events")
    events.add_argument("--user-id", default=None, help="Only events involving this user")

    eta = sub.add_parser("eta", help="Estimate driver arrival for a trip")
    eta.add_argument("trip_id")
    return parser


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    coordinator = build_coordinator(settings)
    try:
        if args.command == "pending":
            return await run_pending(coordinator)
        if args.command == "events":
            return await run_events(coordinator, args.user_id)
        return await run_eta(coordinator, args.trip_id)
    finally:
        await coordinator.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(
        level=settings.log.level,
        json_output=settings.log.format == "json",
        environment=os.environ.get("ENVIRONMENT", "development"),
    )

    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(_run(args, settings))
    return 130


if __name__ == "__main__":
    sys.exit(main())
