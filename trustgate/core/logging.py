"""Structured logging configuration for trustgate."""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Dict, Optional, Set

# Context variable for request-scoped data
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# Headers that should be redacted in logs
SENSITIVE_HEADERS: Set[str] = {
    "authorization",
    "x-csrf-token",
    "x-api-key",
    "x-auth-token",
}

# Data keys whose values are secrets regardless of shape
SENSITIVE_KEYS: Set[str] = {
    "token",
    "csrf_token",
    "csrf_secret",
    "secret",
    "signature",
}


def _is_token_like(value: str) -> bool:
    """Check if a string looks like an anti-forgery token or other secret."""
    if len(value) < 32:
        return False
    # Anti-forgery tokens are colon-delimited; check the longest segment
    longest = max(value.split(":"), key=len)
    if len(longest) < 32:
        return False
    return bool(longest.replace("-", "").replace("_", "").isalnum())


def _redact_value(value: Any) -> str:
    """Redact a sensitive value.

    Short secrets (<12 chars) are fully masked; longer ones keep their
    first and last 3 characters so log lines can still be correlated.
    """
    if not isinstance(value, str):
        return "[REDACTED]"
    if len(value) < 12:
        return "<REDACTED>"
    return f"{value[:3]}***{value[-3:]}"


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries or strings.

    Redacts:
    - Authorization and anti-forgery token header values
    - Cookie headers (masks cookie values)
    - Keys naming tokens, secrets or signatures
    - Free-standing strings that look like tokens
    """
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if key_lower in SENSITIVE_HEADERS or key_lower in SENSITIVE_KEYS:
                redacted[key] = _redact_value(value)
            elif "cookie" in key_lower:
                if isinstance(value, str):
                    redacted[key] = re.sub(r"=[^;]*", "=<REDACTED>", value)
                else:
                    redacted[key] = "[REDACTED]"
            else:
                redacted[key] = redact_sensitive_data(value)
        return redacted
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    elif isinstance(data, str):
        if _is_token_like(data):
            return _redact_value(data)
    return data


def _record_data(record: logging.LogRecord) -> Optional[Any]:
    """Redacted ``data`` attached through ContextLogger, if any."""
    data = getattr(record, "data", None)
    return redact_sensitive_data(data) if data else None


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, with request context and redacted data."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        ctx = request_context.get()
        for field in ("request_id", "method", "path"):
            if ctx.get(field):
                entry[field] = ctx[field]

        data = _record_data(record)
        if data is not None:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable single-line output for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        when = datetime.fromtimestamp(record.created, UTC).strftime("%H:%M:%S")
        request_id = (request_context.get().get("request_id") or "-")[:8]

        parts = [
            when,
            f"{color}{record.levelname:<8}{self.RESET}",
            request_id,
            record.name,
            record.getMessage(),
        ]
        data = _record_data(record)
        if data is not None:
            parts.append(json.dumps(data, default=str))
        line = " | ".join(parts)

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that accepts a ``data`` mapping for structured output."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Process log message with context."""
        extra = kwargs.get("extra", {})
        if "data" in kwargs:
            extra["data"] = kwargs.pop("data")
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, ContextLogger] = {}


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger."""
    if name not in _loggers:
        logger = logging.getLogger(name)
        _loggers[name] = ContextLogger(logger, {})
    return _loggers[name]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Replace only handlers installed by a previous call
    for handler in list(root_logger.handlers):
        if getattr(handler, "_trustgate", False):
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if json_output:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter())
    console_handler._trustgate = True  # type: ignore[attr-defined]
    root_logger.addHandler(console_handler)

    # File handler (always JSON)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        file_handler._trustgate = True  # type: ignore[attr-defined]
        root_logger.addHandler(file_handler)

    # Quiet noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
