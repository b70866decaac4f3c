from .models import EtaEstimate, LocationUpdate, Role, TripLocations
from .sampler import LocationProvider, LocationSampler
from .service import TripLocationService

__all__ = [
    "EtaEstimate",
    "LocationProvider",
    "LocationSampler",
    "LocationUpdate",
    "Role",
    "TripLocationService",
    "TripLocations",
]
