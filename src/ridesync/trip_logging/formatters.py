"""Log formatters for JSON and human-readable output."""

import json
import logging
from datetime import UTC, datetime

SERVICE_NAME = "ridesync"

_CONTEXT_FIELDS = ("trip_id", "driver_id", "user_id", "correlation_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def __init__(self, environment: str = "development"):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service_name": SERVICE_NAME,
            "environment": self.environment,
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class DevFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [trip=%(trip_id)s] %(message)s",
        )
