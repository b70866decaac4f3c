"""Fixed trips offered to drivers when the trip API cannot be reached."""

from ..trip import Coordinates, Customer, Place, TripRequest, TripStatus
from ..utils.clock import Clock, now_ms

DEMO_AVAILABLE_TRIPS = [
    {
        "id": "demo-trip-1",
        "source_address": "Абая 44, Алматы",
        "destination_address": "Достык 132, Алматы",
        "price": 1500,
        "distance_km": 5.2,
        "age_minutes": 5,
        "customer_name": "Ержан Алматов",
        "customer_phone": "+7 705 123 4567",
    },
    {
        "id": "demo-trip-2",
        "source_address": "Тимирязева 38, Алматы",
        "destination_address": "Навои 37, Алматы",
        "price": 1200,
        "distance_km": 3.8,
        "age_minutes": 10,
        "customer_name": "Айгуль Сатпаева",
        "customer_phone": "+7 777 765 4321",
    },
]

DEMO_TRIP_IDS = frozenset(t["id"] for t in DEMO_AVAILABLE_TRIPS)


def demo_trips(clock: Clock = now_ms) -> list[TripRequest]:
    now = clock()
    origin = Coordinates(latitude=0, longitude=0)
    return [
        TripRequest(
            id=trip["id"],
            customer=Customer(id=0, name=trip["customer_name"]),
            pickup=Place(name=trip["source_address"], coordinates=origin),
            destination=Place(name=trip["destination_address"], coordinates=origin),
            fare=trip["price"],
            distance_km=trip["distance_km"],
            timestamp=now - trip["age_minutes"] * 60_000,
            status=TripStatus.PENDING,
            driver_id=None,
        )
        for trip in DEMO_AVAILABLE_TRIPS
    ]
