"""
Logging centralisé.

Un seul point de configuration (setup_logging), appelé par l'app FastAPI et
par la CLI des sweeps. Les modules utilisent logging.getLogger(__name__) et
passent les champs métier via extra={...}.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from backend.app.core.config import get_settings

ROOT_LOGGER = "backend"

_STDLIB_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {
    "message",
    "asctime",
    "taskName",
}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _STDLIB_KEYS}


def _default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    return str(obj)


class JSONFormatter(logging.Formatter):
    """Une ligne JSON par record, champs extra inclus."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_default)


class TextFormatter(logging.Formatter):
    """Format lisible ; les champs extra sont ajoutés en key=value."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extra_fields(record)
        if not extras:
            return base
        return base + " | " + " ".join(f"{k}={_default(v)}" for k, v in sorted(extras.items()))


def setup_logging(level: str | None = None, json_output: bool | None = None) -> logging.Logger:
    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON if json_output is None else json_output

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else TextFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    logger.info("logging_configured", extra={"level": level_name, "json": use_json})
    return logger
