from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class DataSource(str, Enum):
    """Where a service result came from."""

    LIVE = "live"
    LOCAL = "local"
    DEMO = "demo"


@dataclass
class ServiceResult(Generic[T]):
    value: T
    source: DataSource
    error: str | None = None

    @property
    def degraded(self) -> bool:
        """True when the trip API did not confirm this result."""
        return self.source is not DataSource.LIVE
