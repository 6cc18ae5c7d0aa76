"""Logging setup for the API process (plain text or one JSON object per line)."""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

_STDLIB_KEYS: frozenset = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class _JSONEncoder(json.JSONEncoder):
    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # fields passed through `extra=`
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


_configured = False
_handler: Optional[logging.Handler] = None
_lock = threading.Lock()


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    *,
    stream: Any = None,
    handler: Optional[logging.Handler] = None,
) -> None:
    """Attach a single handler to the root logger. Safe to call more than once."""
    global _configured, _handler
    with _lock:
        if _configured:
            return
        _configured = True

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        h.setFormatter(JSONFormatter())
    else:
        h.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(h)
    _handler = h


def reset_logging() -> None:
    """Remove the handler installed by configure_logging (used by tests)."""
    global _configured, _handler
    with _lock:
        _configured = False
        if _handler is not None:
            logging.getLogger().removeHandler(_handler)
            _handler = None
