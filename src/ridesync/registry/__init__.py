from .requests_registry import TripRequestRegistry

__all__ = ["TripRequestRegistry"]
