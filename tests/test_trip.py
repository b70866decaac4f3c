import pytest

from ridesync.trip import TripRequest, TripStatus, to_api_status


def _raw(**overrides):
    data = {
        "id": "req_1",
        "customer": {"id": 7, "name": "Айгуль"},
        "pickup": {"name": "Абая 44", "coordinates": {"latitude": 43.2, "longitude": 76.9}},
        "destination": {"name": "Достык 132", "coordinates": {"latitude": 43.3, "longitude": 76.95}},
        "fare": 1500,
        "timestamp": 1,
        "status": "pending",
        "driverId": None,
    }
    data.update(overrides)
    return data


@pytest.mark.unit
class TestTripStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("PENDING", TripStatus.PENDING),
            ("accepted", TripStatus.ACCEPTED),
            ("IN_PROGRESS", TripStatus.ACCEPTED),
            ("DRIVER_ARRIVED", TripStatus.ACCEPTED),
            ("Completed", TripStatus.COMPLETED),
            ("CANCELLED", TripStatus.CANCELLED),
            ("something_else", TripStatus.CANCELLED),
        ],
    )
    def test_from_api(self, raw, expected):
        assert TripStatus.from_api(raw) is expected

    def test_terminal_and_open(self):
        assert TripStatus.COMPLETED.is_terminal
        assert TripStatus.CANCELLED.is_terminal
        assert TripStatus.PENDING.is_open
        assert not TripStatus.ACCEPTED.is_terminal

    def test_to_event_type(self):
        assert TripStatus.COMPLETED.to_event_type() == "trip_completed"

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (TripStatus.PENDING, TripStatus.ACCEPTED, True),
            (TripStatus.PENDING, TripStatus.CANCELLED, True),
            (TripStatus.PENDING, TripStatus.COMPLETED, False),
            (TripStatus.ACCEPTED, TripStatus.COMPLETED, True),
            (TripStatus.ACCEPTED, TripStatus.PENDING, False),
            (TripStatus.CANCELLED, TripStatus.PENDING, False),
            (TripStatus.CANCELLED, TripStatus.ACCEPTED, False),
            (TripStatus.COMPLETED, TripStatus.CANCELLED, False),
            (TripStatus.COMPLETED, TripStatus.COMPLETED, True),
        ],
    )
    def test_can_transition_to(self, current, target, allowed):
        assert current.can_transition_to(target) is allowed

    @pytest.mark.parametrize(
        "status,expected",
        [("on_the_way", "DRIVER_ON_THE_WAY"), ("ARRIVED", "DRIVER_ARRIVED"), ("cancelled", "CANCELLED"), ("weird", "weird")],
    )
    def test_to_api_status(self, status, expected):
        assert to_api_status(status) == expected


@pytest.mark.unit
class TestTripRequest:
    def test_parses_storage_shape(self):
        request = TripRequest.from_storage(_raw(status="ACCEPTED", driverId=12))
        assert request.status is TripStatus.ACCEPTED
        assert request.driver_id == "12"
        assert request.customer_id == "7"

    def test_ownership(self):
        request = TripRequest.from_storage(_raw(driverId="d1"))
        assert request.is_owned_by(7)
        assert request.is_owned_by("7")
        assert not request.is_owned_by("8")
        assert request.is_assigned_to("d1")
        assert not TripRequest.from_storage(_raw()).is_assigned_to("d1")

    def test_to_storage_uses_camel_case_and_drops_empty_optionals(self):
        data = TripRequest.from_storage(_raw(driverId="d1")).to_storage()
        assert data["driverId"] == "d1"
        assert data["status"] == "pending"
        assert "distance_km" not in data
        assert "inHistory" not in data
        assert "updatedAt" not in data

    def test_in_history_is_kept_when_set(self):
        data = TripRequest.from_storage(_raw(inHistory=True)).to_storage()
        assert data["inHistory"] is True
