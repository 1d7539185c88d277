"""Structured logging with request correlation.

Usage:
    from connectauth.core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Account linked", provider="github", user_id=user_id)

Keyword fields are attached to the record, masked when they look like
secrets (authorization codes, tokens, passwords), and rendered as JSON in
production or inline in development.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
operation_var: ContextVar[str | None] = ContextVar("operation", default=None)

_CONTEXT = (("request_id", request_id_var), ("user_id", user_id_var), ("operation", operation_var))

# Keys containing any of these are masked
SENSITIVE_FIELDS = {
    "password", "secret", "token", "credential", "authorization",
    "cookie", "private_key", "assertion",
}
# Keys masked only on exact match ("code" would otherwise hit status_code)
SENSITIVE_KEYS = {"code", "session"}

_LEVEL_COLOURS = {
    logging.DEBUG: 36,
    logging.INFO: 32,
    logging.WARNING: 33,
    logging.ERROR: 31,
    logging.CRITICAL: 35,
}


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return key in SENSITIVE_KEYS or any(fragment in key for fragment in SENSITIVE_FIELDS)


def _redact(value: Any) -> str:
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "[REDACTED]"


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with secret-looking values shortened or redacted."""
    return {
        key: _redact(value) if _is_sensitive(key)
        else mask_sensitive(value) if isinstance(value, dict)
        else value
        for key, value in data.items()
    }


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Context variables followed by the record's masked keyword fields."""
    fields = {name: var.get() for name, var in _CONTEXT if var.get()}
    fields.update(mask_sensitive(getattr(record, "extra_fields", None) or {}))
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Coloured single-line output for local development."""

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        tags = []
        if request_id := fields.pop("request_id", None):
            tags.append(f"req={request_id[:8]}")
        if operation := fields.pop("operation", None):
            tags.append(f"op={operation}")
        fields.pop("user_id", None)

        colour = _LEVEL_COLOURS.get(record.levelno, 0)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"\033[{colour}m{clock} {record.levelname:<7}\033[0m {record.name}"
        if tags:
            line += f" [{' '.join(tags)}]"
        line += f" {record.getMessage()}"
        if fields:
            line += "  " + " ".join(f"{key}={value}" for key, value in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger whose level methods take arbitrary keyword fields.

    ``logger.info("Linked", provider="apple")`` stores ``{"provider": "apple"}``
    on the record as ``extra_fields`` for the formatters above.
    """

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1, **fields):
        if fields:
            extra = {**(extra or {}), "extra_fields": fields}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra,
                     stack_info=stack_info, stacklevel=stacklevel + 1)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module."""
    logging.setLoggerClass(StructuredLogger)
    try:
        return logging.getLogger(name)
    finally:
        logging.setLoggerClass(logging.Logger)


def setup_logging(json_output: bool = False, level: str = "INFO"):
    """Install a single stdout handler on the root logger.

    Args:
        json_output: Emit JSON lines instead of coloured text
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)

    for noisy in ("uvicorn.access", "httpx", "httpcore", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and log its outcome.

    An incoming ``X-Request-ID`` header is honoured so callers can correlate
    their own logs; the ID is echoed on the response either way.
    """

    logger = get_logger("connectauth.http")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        fields = {"method": request.method, "path": request.url.path}
        if operation := request.query_params.get("method"):
            fields["oauth_method"] = operation

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error("Unhandled error", error=str(e), elapsed_ms=self._elapsed(started),
                              exc_info=True, **fields)
            raise
        else:
            self.logger.info("%s %s -> %d", request.method, request.url.path, response.status_code,
                             status_code=response.status_code, elapsed_ms=self._elapsed(started), **fields)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(token)

    @staticmethod
    def _elapsed(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 1)


def set_log_context(user_id: str | None = None, operation: str | None = None):
    """Attach the current user and operation to subsequent log lines."""
    if user_id:
        user_id_var.set(user_id)
    if operation:
        operation_var.set(operation)
