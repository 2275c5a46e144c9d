"""JSON-lines logging for the tilenav service.

Every record becomes one object on stdout:
    {"ts": 1700000000000, "level": "INFO", "logger": "tilenav.tiles",
     "msg": "Loaded map 000: 2 tiles", "map_id": "000"}

Map and request context travels through ``extra=``; only the keys in
`CONTEXT_FIELDS` are copied into the payload.
"""

from __future__ import annotations

import json
import logging
import os
import sys

CONTEXT_FIELDS = ("map_id", "tile", "endpoint")

_CONFIGURED_ATTR = "_tilenav_configured"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, object] = {
            "ts": int(record.created * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | None = None) -> None:
    """Route the root logger to stdout as JSON lines; later calls are no-ops.

    Level comes from `level`, then `LOG_LEVEL`, then INFO. Uvicorn's own
    loggers propagate to the root, so access logs share the format.
    """
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_ATTR, False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    setattr(root, _CONFIGURED_ATTR, True)
