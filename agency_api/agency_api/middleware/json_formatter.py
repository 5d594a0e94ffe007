"""Single-line JSON log records for ``API_STRUCTURED_LOGGING=true``.

Every line carries ``ts``, ``level``, ``logger`` and ``message``.  The access
log's ``request`` dict is nested as-is; a traceback, when present, is
flattened into ``exc_info``.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

_NESTED_ATTRS = ("request",)


class JSONFormatter(logging.Formatter):
    """Render a :class:`logging.LogRecord` as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in _NESTED_ATTRS:
            value = getattr(record, attr, None)
            if value is not None:
                doc[attr] = value
        if record.exc_info:
            doc["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str, ensure_ascii=False)


def configure_json_logging(level: int = logging.INFO) -> None:
    """Route the root logger through a single JSON stream handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
