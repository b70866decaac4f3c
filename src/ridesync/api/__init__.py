from .auth import TokenProvider, is_driver_token, token_preview
from .client import TripApiClient, auth_headers, parse_api_trip
from .demo import DEMO_AVAILABLE_TRIPS, DEMO_TRIP_IDS, demo_trips
from .results import DataSource, ServiceResult

__all__ = [
    "DEMO_AVAILABLE_TRIPS",
    "DEMO_TRIP_IDS",
    "DataSource",
    "ServiceResult",
    "TokenProvider",
    "TripApiClient",
    "auth_headers",
    "demo_trips",
    "is_driver_token",
    "parse_api_trip",
    "token_preview",
]
