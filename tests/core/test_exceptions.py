import pytest

from ridesync.core.exceptions import (
    AuthenticationError,
    ConflictError,
    CoordinationError,
    NetworkError,
    NotFoundError,
    PermanentError,
    StorageError,
    TransientError,
)


@pytest.mark.unit
class TestExceptionHierarchy:
    @pytest.mark.parametrize("exc_type", [NetworkError, StorageError])
    def test_transient(self, exc_type):
        assert issubclass(exc_type, TransientError)
        assert issubclass(exc_type, CoordinationError)

    @pytest.mark.parametrize("exc_type", [NotFoundError, ConflictError, AuthenticationError])
    def test_permanent(self, exc_type):
        assert issubclass(exc_type, PermanentError)
        assert not issubclass(exc_type, TransientError)

    def test_details_default_to_empty_dict(self):
        err = NotFoundError("Trip not found")
        assert err.message == "Trip not found"
        assert err.details == {}
        assert str(err) == "Trip not found"

    def test_details_are_kept(self):
        err = ConflictError("lost", details={"key": "taxiRequests"})
        assert err.details["key"] == "taxiRequests"
