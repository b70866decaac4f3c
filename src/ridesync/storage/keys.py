"""Persisted state layout.

Key names match what the mobile app writes so both can share a store.
"""

TAXI_REQUESTS = "taxiRequests"
BROADCAST_EVENTS = "taxi_broadcast_events"

# Authenticated user and token slots
USER_DATA = "userData"
USER = "user"
USER_ID = "userId"
AUTH_TOKEN = "authToken"
USER_TOKEN = "userToken"
TOKEN = "token"
TOKEN_KEYS = (AUTH_TOKEN, USER_TOKEN, TOKEN)

# Session shadow copies
ACTIVE_TRIP_ID = "activeTaxiTripId"
GLOBAL_TRIP_DATA = "global_trip_data"
GLOBAL_PICKUP_COORDINATES = "global_pickup_coordinates"
GLOBAL_DESTINATION_COORDINATES = "global_destination_coordinates"
GLOBAL_DRIVER_LOCATION = "global_driver_location"
GLOBAL_CUSTOMER_LOCATION = "global_customer_location"
GLOBAL_TRIP_FLAGS = "global_trip_flags"

GLOBAL_SESSION_KEYS = (
    GLOBAL_TRIP_DATA,
    GLOBAL_PICKUP_COORDINATES,
    GLOBAL_DESTINATION_COORDINATES,
    GLOBAL_TRIP_FLAGS,
    ACTIVE_TRIP_ID,
)


def customer_active_trip(customer_id: str | int) -> str:
    return f"active_trip_{customer_id}"


def customer_active_request(customer_id: str | int) -> str:
    return f"user_active_request_{customer_id}"


def customer_requests(customer_id: str | int) -> str:
    return f"taxiRequests_{customer_id}"


def driver_active_trip(driver_id: str | int) -> str:
    return f"driver_active_trip_{driver_id}"


def user_location(role: str, user_id: str | int) -> str:
    return f"{role}_location_{user_id}"


def user_location_history(role: str, user_id: str | int) -> str:
    return f"{role}_location_history_{user_id}"


def trip_location(trip_id: str, role: str) -> str:
    return f"trip_{trip_id}_{role}_location"


def customer_trip_keys(customer_id: str | int) -> list[str]:
    """Every per-customer key dropped when that customer's trip is cancelled."""
    return [
        customer_active_trip(customer_id),
        customer_active_request(customer_id),
        f"trip_state_{customer_id}",
        f"driver_location_{customer_id}",
        f"customer_location_{customer_id}",
        f"trip_events_{customer_id}",
    ]


def user_projection_keys(user_id: str | int) -> list[str]:
    return [
        customer_active_trip(user_id),
        driver_active_trip(user_id),
        customer_active_request(user_id),
        customer_requests(user_id),
    ]
