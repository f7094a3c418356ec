"""Logging setup driven by the ``log_level`` / ``log_format`` settings."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from procurement_approvals.core.config import Settings, get_settings

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Fields passed through ``extra=``
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

        return json.dumps(payload, default=_json_default)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    return str(obj)


def configure_logging(settings: Settings | None = None) -> None:
    """Install the root handler according to settings.

    Safe to call more than once; the previous handler installed here is
    replaced rather than duplicated.
    """
    settings = settings or get_settings()
    root = logging.getLogger()

    for handler in list(root.handlers):
        if getattr(handler, "_procurement_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._procurement_handler = True  # type: ignore[attr-defined]
    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
