"""TALLY — Structured JSON Logging."""

import logging
import json
import sys
from datetime import datetime, timezone
from tally.config import settings

EXTRA_FIELDS = (
    "operation",
    "metric_id",
    "scorecard_id",
    "error_type",
    "duration_ms",
    "endpoint",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """Produces structured JSON log lines for production observability."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Attach extra fields if present
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)
        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with structured JSON handler."""
    logger = logging.getLogger(f"tally.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


class MetricLogAdapter(logging.LoggerAdapter):
    """Stamps metric_id and scorecard_id onto every record."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def for_metric(logger: logging.Logger, metric) -> MetricLogAdapter:
    """Logger bound to one metric's ids."""
    return MetricLogAdapter(
        logger, {"metric_id": metric.id, "scorecard_id": metric.scorecard_id}
    )
