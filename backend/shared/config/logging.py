"""
Structured logging shared by the REST API and the realtime gateway.

Both processes log through ``StructuredLogger``: keyword arguments given
to a log call travel as ``record.extra_data`` and are rendered as fields.
Production emits one JSON object per line; development prints coloured
single lines. Every record carries the process name (``rest-api`` or
``ws-gateway``) and, inside an HTTP request, the X-Request-ID.

Usage:
    from shared.config.logging import get_logger, mask_token

    logger = get_logger(__name__)
    logger.info("Token issued", table_id="4", token=mask_token(token))
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings


def _request_id(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class JsonFormatter(logging.Formatter):
    """One JSON document per record, for log aggregation."""

    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = _request_id(record)
        if request_id:
            doc["request_id"] = request_id
        fields = _fields(record)
        if fields:
            doc["data"] = fields
        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            doc["source"] = f"{record.filename}:{record.lineno}"
        return json.dumps(doc, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured one-line output for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}", f"{self.DIM}{self.service}{self.RESET}"]

        request_id = _request_id(record)
        if request_id:
            parts.append(f"{self.DIM}[{request_id[:8]}]{self.RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")

        line = " ".join(parts)
        fields = _fields(record)
        if fields:
            line += " (" + ", ".join(f"{k}={v}" for k, v in fields.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger whose methods accept keyword fields next to the message."""

    def _emit(self, level: int, msg: str, args: tuple, fields: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        extra = fields.pop("extra", None) or {}
        extra["extra_data"] = fields or None
        # stacklevel 3: report the caller of info()/error(), not this wrapper
        self._log(level, msg, args, exc_info=exc_info, extra=extra, stacklevel=3)

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, args, fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.INFO, msg, args, fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, args, fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, args, fields)

    def critical(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.CRITICAL, msg, args, fields)


logging.setLoggerClass(StructuredLogger)


def setup_logging(service: str) -> None:
    """
    Install the process-wide handler. Call once from the lifespan.

    Args:
        service: Process name stamped on every record ("rest-api", "ws-gateway").
    """
    # Import here to avoid circular imports
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    if settings.is_production:
        handler.setFormatter(JsonFormatter(service))
    else:
        handler.setFormatter(ConsoleFormatter(service))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "engineio", "socketio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_token(token: str | None) -> str:
    """
    Shorten a check-in token or session id to its first 8 characters.

    Enough to correlate log lines, not enough to replay the credential.
    """
    if not token:
        return "<no-token>"
    if len(token) <= 8:
        return token[:2] + "***"
    return f"{token[:8]}..."


rest_api_logger = get_logger("rest_api")
ws_gateway_logger = get_logger("ws_gateway")
qr_logger = get_logger("rest_api.qr")
cart_logger = get_logger("rest_api.shared_cart")

security_audit_logger = get_logger("security.audit")


def audit_rate_limit_event(
    context: str,
    identifier: int | str,
    limit: int,
    window: int,
    ip_address: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a rate-limit denial on the security audit logger.

    Args:
        context: Which limit tripped (qr_issue, qr_consume, qr_table_issue).
        identifier: Table static id or client IP being limited.
    """
    security_audit_logger.warning(
        f"Rate limit exceeded: {context}",
        context=context,
        identifier=identifier,
        limit=limit,
        window=window,
        ip_address=ip_address,
        **extra,
    )
