from .manager import PENDING_DRIVER_ID, SEEKING_DRIVER_NAME, TripManager, needs_driver_search
from .state import LocationInfo, SessionStatus, TripSession, TripSessionState

__all__ = [
    "PENDING_DRIVER_ID",
    "SEEKING_DRIVER_NAME",
    "LocationInfo",
    "SessionStatus",
    "TripManager",
    "TripSession",
    "TripSessionState",
    "needs_driver_search",
]
