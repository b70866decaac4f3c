"""Great-circle distances for trips.

Trip creation sends a rounded kilometer distance to the API; during a trip
the same Haversine math drives the driver ETA and arrival checks.
"""

from math import atan2, cos, radians, sin, sqrt

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000

# ~9e-6 degrees per meter (1 / 111,320 m per degree of latitude)
_LAT_DEGREES_PER_METER: float = 1.0 / 111_320


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Meters between two latitude/longitude points given in degrees."""
    phi1, phi2 = radians(lat1), radians(lat2)
    half_dphi = (phi2 - phi1) / 2
    half_dlambda = radians(lon2 - lon1) / 2

    h = sin(half_dphi) ** 2 + cos(phi1) * cos(phi2) * sin(half_dlambda) ** 2
    return EARTH_RADIUS_M * 2 * atan2(sqrt(h), sqrt(1 - h))


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_distance_m(lat1, lon1, lat2, lon2) / 1000.0


def trip_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Kilometers rounded to one decimal, as shown to riders and sent to the API."""
    return round(haversine_distance_km(lat1, lon1, lat2, lon2), 1)


def is_within_proximity(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    threshold_m: float = 50.0,
) -> bool:
    """True when the driver at (lat1, lon1) is within ``threshold_m`` of the waypoint.

    Location samples arrive every few seconds for every active trip, so a
    bounding box rejects far-away points before the exact distance is
    computed.
    """
    # A degree of longitude shrinks by cos(lat); the wider box at the
    # higher latitude of the two covers the whole threshold circle.
    lat_box_deg = threshold_m * _LAT_DEGREES_PER_METER * 1.01
    lon_scale = cos(radians(max(abs(lat1), abs(lat2))))
    if abs(lat2 - lat1) > lat_box_deg:
        return False
    if lon_scale > 1e-6 and abs(lon2 - lon1) > lat_box_deg / lon_scale:
        return False

    return haversine_distance_m(lat1, lon1, lat2, lon2) <= threshold_m
