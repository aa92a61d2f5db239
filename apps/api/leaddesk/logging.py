from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from leaddesk.context import get_correlation_id
from leaddesk.core.config import get_settings

ERROR_FIELD_LIMIT = 500

# Extras allowed into a log line; anything else passed through ``extra`` is dropped.
STRUCTURED_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "user_id",
    "department_id",
    "lead_id",
    "manager_id",
    "operation",
    "requested",
    "applied",
    "event_name",
    "event_payload",
    "error",
)

_base_record_factory = logging.getLogRecordFactory()


def _correlated_record(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {key: getattr(record, key) for key in STRUCTURED_FIELDS if hasattr(record, key)}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:ERROR_FIELD_LIMIT]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        line = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        return json.dumps(line, default=str)


def configure_logging(level: str | None = None) -> None:
    """Send JSON lines to stdout. Safe to call more than once."""
    root_logger = logging.getLogger()
    logging.setLogRecordFactory(_correlated_record)
    if any(isinstance(handler.formatter, JsonLogFormatter) for handler in root_logger.handlers):
        return

    level_name = (level or get_settings().log_level).upper()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
