from .distance import (
    EARTH_RADIUS_KM,
    haversine_distance_km,
    haversine_distance_m,
    is_within_proximity,
    trip_distance_km,
)

__all__ = [
    "EARTH_RADIUS_KM",
    "haversine_distance_km",
    "haversine_distance_m",
    "is_within_proximity",
    "trip_distance_km",
]
