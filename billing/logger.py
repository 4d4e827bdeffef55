from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_EXTRA_FIELDS = (
    "operation",
    "bill_id",
    "bill_number",
    "transaction_id",
    "outcome",
    "latency_ms",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.handlers:
        for handler in root.handlers:
            handler.setFormatter(JsonFormatter())
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def log_billing_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    operation: str,
    bill_id: int | None = None,
    bill_number: str | None = None,
    transaction_id: str | None = None,
    outcome: str | None = None,
    latency_ms: int | None = None,
) -> None:
    extra: dict[str, Any] = {"operation": operation}
    if bill_id is not None:
        extra["bill_id"] = bill_id
    if bill_number is not None:
        extra["bill_number"] = bill_number
    if transaction_id is not None:
        extra["transaction_id"] = transaction_id
    if outcome is not None:
        extra["outcome"] = outcome
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    logger.log(level, message, extra=extra)
