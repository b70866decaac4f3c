"""Tests for trip participant locations and ETA."""

import json
import logging
from unittest.mock import AsyncMock

import pytest

from ridesync.broadcast import DRIVER_LOCATION_UPDATE
from ridesync.storage import keys

ABAYA = {"latitude": 43.2380, "longitude": 76.9450}
DOSTYK = {"latitude": 43.2330, "longitude": 76.9570}


@pytest.mark.unit
class TestUpdateUserLocation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_id,location",
        [
            (None, ABAYA),
            ("", ABAYA),
            ("d1", {"latitude": 43.2}),
            ("d1", {"longitude": 76.9}),
            ("d1", {"latitude": None, "longitude": 76.9}),
        ],
    )
    async def test_incomplete_input_is_rejected(self, location_service, store, user_id, location):
        assert await location_service.update_user_location(user_id, "driver", location) is False
        assert await store.get_all_keys() == []

    @pytest.mark.asyncio
    async def test_zero_coordinates_are_valid(self, location_service):
        assert await location_service.update_user_location("d1", "driver", {"latitude": 0, "longitude": 0})
        stored = await location_service.get_user_location("d1", "driver")
        assert (stored.latitude, stored.longitude) == (0, 0)

    @pytest.mark.asyncio
    async def test_stores_latest_without_trip(self, location_service, store, clock):
        assert await location_service.update_user_location("d1", "driver", {**ABAYA, "speed": 10})

        latest = await location_service.get_user_location("d1", "driver")
        assert latest.timestamp == clock.now
        assert latest.speed == 10
        assert latest.trip_id is None
        assert await store.get(keys.BROADCAST_EVENTS) is None

    @pytest.mark.asyncio
    async def test_int_user_id_shares_key_with_string(self, location_service):
        await location_service.update_user_location(7, "customer", ABAYA)
        assert (await location_service.get_user_location("7", "customer")).user_id == "7"

    @pytest.mark.asyncio
    @pytest.mark.critical
    async def test_history_is_capped(self, location_service, clock):
        for i in range(25):
            clock.advance(1000)
            await location_service.update_user_location("d1", "driver", {"latitude": 43 + i / 1000, "longitude": 76.9})

        history = await location_service.get_user_location_history("d1", "driver")

        assert len(history) == 20
        assert history[0].latitude == pytest.approx(43.005)
        assert history[-1].latitude == pytest.approx(43.024)

    @pytest.mark.asyncio
    async def test_trip_update_writes_trip_key_and_broadcasts(self, location_service, store, broadcast_log):
        await location_service.update_user_location("d1", "driver", ABAYA, trip_id="req_1")

        trip_record = json.loads(await store.get(keys.trip_location("req_1", "driver")))
        assert trip_record["userId"] == "d1"
        assert trip_record["tripId"] == "req_1"

        [event] = await broadcast_log.get_latest_events()
        assert event.type == DRIVER_LOCATION_UPDATE
        assert event.payload == {"id": "req_1", "driver": {"id": "d1", "location": ABAYA}}

    @pytest.mark.asyncio
    async def test_trip_update_is_synced_in_background(self, location_service, background):
        sync = AsyncMock()
        location_service.set_location_sync(sync)

        await location_service.update_user_location("d1", "driver", ABAYA, trip_id="req_1")
        await background.drain()

        sync.assert_awaited_once()
        assert sync.await_args.args[0].trip_id == "req_1"

    @pytest.mark.asyncio
    async def test_sync_failure_does_not_fail_update(self, location_service, background):
        location_service.set_location_sync(AsyncMock(side_effect=RuntimeError("offline")))

        assert await location_service.update_user_location("d1", "driver", ABAYA, trip_id="req_1")
        await background.drain()


@pytest.mark.unit
class TestGetUserLocation:
    @pytest.mark.asyncio
    async def test_missing(self, location_service):
        assert await location_service.get_user_location("ghost", "customer") is None

    @pytest.mark.asyncio
    async def test_stale_location_is_returned_and_logged(self, location_service, clock, caplog):
        caplog.set_level(logging.INFO)
        await location_service.update_user_location("c1", "customer", ABAYA)
        clock.advance(301_000)

        assert await location_service.get_user_location("c1", "customer") is not None
        assert "outdated" in caplog.text


@pytest.mark.unit
class TestTripLocationsAndEta:
    @pytest.mark.asyncio
    async def test_unknown_trip(self, location_service):
        locations = await location_service.get_trip_locations("req_missing")
        assert locations.driver is None and locations.customer is None

        eta = await location_service.calculate_eta("req_missing")
        assert eta.eta_seconds is None
        assert eta.distance_remaining is None
        assert eta.has_arrived is None

    @pytest.mark.asyncio
    async def test_no_driver_position(self, location_service, registry, new_trip):
        request = await registry.create_request(new_trip)
        await location_service.update_user_location("c1", "customer", ABAYA, trip_id=request.id)

        locations = await location_service.get_trip_locations(request.id)
        assert locations.customer.user_id == "c1"
        assert (await location_service.calculate_eta(request.id)).eta_seconds is None

    @pytest.mark.asyncio
    @pytest.mark.critical
    async def test_driver_at_pickup_has_arrived(self, location_service, registry, new_trip):
        request = await registry.create_request(new_trip)
        await registry.update_request_status(request.id, "accepted")
        await location_service.update_user_location("d1", "driver", ABAYA, trip_id=request.id)

        eta = await location_service.calculate_eta(request.id)

        assert eta.eta_seconds == 0
        assert eta.distance_remaining == 0
        assert eta.has_arrived is True

    @pytest.mark.asyncio
    async def test_driver_just_east_of_pickup_has_arrived(self, location_service, registry, new_trip):
        request = await registry.create_request(new_trip)
        await registry.update_request_status(request.id, "accepted")
        # ~40 m east of the pickup
        east = {"latitude": ABAYA["latitude"], "longitude": ABAYA["longitude"] + 0.000494}
        await location_service.update_user_location("d1", "driver", east, trip_id=request.id)

        eta = await location_service.calculate_eta(request.id)

        assert eta.has_arrived is True

    @pytest.mark.asyncio
    async def test_pending_trip_targets_destination(self, location_service, registry, new_trip):
        request = await registry.create_request(new_trip)
        await location_service.update_user_location("d1", "driver", ABAYA, trip_id=request.id)

        eta = await location_service.calculate_eta(request.id)

        assert eta.distance_remaining == 1.1
        assert eta.eta_seconds == round(1.1 * 1000 / 8.33)
        assert eta.has_arrived is False

    @pytest.mark.asyncio
    async def test_slow_driver_uses_speed_floor(self, location_service, registry, new_trip):
        request = await registry.create_request(new_trip)
        await location_service.update_user_location("d1", "driver", {**ABAYA, "speed": 1}, trip_id=request.id)

        eta = await location_service.calculate_eta(request.id)

        assert eta.eta_seconds == round(1.1 * 1000 / 5)

    @pytest.mark.asyncio
    async def test_accepted_trip_targets_pickup(self, location_service, registry, new_trip):
        request = await registry.create_request(new_trip)
        await registry.update_request_status(request.id, "accepted")
        await location_service.update_user_location("d1", "driver", DOSTYK, trip_id=request.id)

        eta = await location_service.calculate_eta(request.id)

        assert eta.distance_remaining == 1.1
        assert eta.has_arrived is False
