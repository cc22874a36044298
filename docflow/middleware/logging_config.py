"""
Logging setup for the workflow backend.

Production writes one JSON object per line; development and tests write a
plain "time level logger: message" line. LOG_LEVEL overrides the level.

Services pass workflow context through `extra=`. The JSON formatter emits
the keys in CONTEXT_KEYS; the readable formatter appends "[kind:id]".
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_KEYS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "document_kind",
    "document_id",
    "principal_id",
    "action",
    "attempt",
    "file_id",
)

READABLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with workflow context keys when set."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):

    def __init__(self):
        super().__init__(READABLE_FORMAT, datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        kind = getattr(record, "document_kind", None)
        doc_id = getattr(record, "document_id", None)
        if kind and doc_id:
            first, _, rest = line.partition("\n")
            line = f"{first} [{kind}:{str(doc_id)[:8]}]" + (f"\n{rest}" if rest else "")
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_prod = not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)
    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)
