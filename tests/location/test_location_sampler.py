import pytest

from ridesync.location import LocationSampler
from ridesync.session import TripSessionState


def provider_of(*fixes):
    remaining = list(fixes)

    async def provide():
        return remaining.pop(0) if remaining else None

    return provide


@pytest.mark.unit
class TestLocationSampler:
    @pytest.mark.asyncio
    async def test_no_fix(self, location_service, session):
        sampler = LocationSampler(location_service, session, provider_of(None), "d1", "driver")
        assert await sampler.sample_once() is False
        assert session.driver_location is None

    @pytest.mark.asyncio
    async def test_fix_is_normalized_and_mirrored(self, location_service, session, clock):
        sampler = LocationSampler(
            location_service, session, provider_of({"latitude": 43.2, "longitude": 76.9}), "d1", "driver", clock=clock
        )

        assert await sampler.sample_once() is True

        info = session.driver_location
        assert info.coordinates.latitude == 43.2
        assert (info.speed, info.heading, info.accuracy) == (0, 0, 0)
        assert info.timestamp == clock.now
        assert session.trip_data.driver_location is None
        stored = await location_service.get_user_location("d1", "driver")
        assert stored.speed == 0

    @pytest.mark.asyncio
    async def test_active_trip_gets_customer_fix(self, location_service, session, clock):
        session.trip_data = TripSessionState(is_active=True, status="active")
        sampler = LocationSampler(
            location_service,
            session,
            provider_of({"latitude": 43.2, "longitude": 76.9, "speed": 3.5, "timestamp": 42}),
            "c1",
            "customer",
            trip_id="req_1",
            clock=clock,
        )

        await sampler.sample_once()

        assert session.customer_location.timestamp == 42
        assert session.trip_data.customer_location.speed == 3.5
        assert session.trip_data.last_location_update == clock.now

    @pytest.mark.asyncio
    async def test_rejected_fix_is_not_mirrored(self, location_service, session):
        sampler = LocationSampler(location_service, session, provider_of({"latitude": 43.2}), "d1", "driver")

        assert await sampler.sample_once() is False
        assert session.driver_location is None
