import json
import logging
import sys

import pytest

from ridesync.logging_setup import setup_logging
from ridesync.trip_logging import (
    ContextFilter,
    DefaultCorrelationFilter,
    JSONFormatter,
    LogContext,
    PIIFilter,
    log_trip_context,
)


def make_record(msg: str) -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, None, None)


@pytest.mark.unit
class TestPIIFilter:
    def test_masks_email(self):
        record = make_record("Login for erzhan@example.kz failed")
        PIIFilter().filter(record)
        assert record.msg == "Login for [EMAIL] failed"

    def test_masks_phone(self):
        record = make_record("Customer phone +7 705 123 4567")
        PIIFilter().filter(record)
        assert record.msg == "Customer phone [PHONE]"

    def test_masks_bearer_token(self):
        record = make_record("Header Bearer abc.def-123 sent")
        PIIFilter().filter(record)
        assert record.msg == "Header Bearer [TOKEN] sent"

    def test_leaves_timestamps_and_ids(self):
        msg = "Trip req_1718000000000 started at 1718000000123"
        record = make_record(msg)
        PIIFilter().filter(record)
        assert record.msg == msg


@pytest.mark.unit
class TestContext:
    def test_trip_context_fields_are_injected(self):
        record = make_record("x")
        with log_trip_context("req_1", driver_id="d1"):
            ContextFilter().filter(record)
        assert record.trip_id == "req_1"
        assert record.correlation_id == "req_1"
        assert record.driver_id == "d1"

    def test_context_is_restored_on_exit(self):
        with log_trip_context("outer"):
            with log_trip_context("inner"):
                assert LogContext.get()["trip_id"] == "inner"
            assert LogContext.get()["trip_id"] == "outer"
        assert "trip_id" not in LogContext.get()

    def test_defaults(self):
        record = make_record("x")
        DefaultCorrelationFilter().filter(record)
        assert (record.trip_id, record.correlation_id) == ("-", "-")


@pytest.mark.unit
def test_setup_logging_installs_filters():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(level="DEBUG", json_output=True)
        [handler] = root.handlers
        assert root.level == logging.DEBUG
        assert [type(f) for f in handler.filters] == [ContextFilter, DefaultCorrelationFilter, PIIFilter]
        assert isinstance(handler.formatter, JSONFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


@pytest.mark.unit
class TestJSONFormatter:
    def test_quotes_in_message_stay_valid_json(self):
        record = make_record('Driver said "on my way" \\ twice')

        data = json.loads(JSONFormatter("production").format(record))

        assert data["message"] == 'Driver said "on my way" \\ twice'
        assert data["environment"] == "production"
        assert data["service_name"] == "ridesync"

    def test_includes_context_fields(self):
        record = make_record("accepted")
        with log_trip_context("req_1", driver_id="d1"):
            ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert (data["trip_id"], data["driver_id"], data["correlation_id"]) == ("req_1", "d1", "req_1")
        assert "user_id" not in data

    def test_includes_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "ValueError: bad" in data["exception"]
