"""Structured JSON logging configuration with PII redaction."""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any

REDACTED = "[redacted]"

# Extra fields never written verbatim
_SENSITIVE_KEYS = {
    'password', 'password_hash', 'token', 'access_token', 'id_token',
    'refresh_token', 'code', 'authorization', 'secret',
}
_EMAIL_KEYS = {'email', 'recipient', 'recipient_email', 'to'}


def mask_email(email: str | None) -> str | None:
    """Keep the first character and the domain: a***@example.com."""
    if not email:
        return email
    local, sep, domain = email.partition('@')
    if not sep:
        return REDACTED
    return f"{local[:1]}***@{domain}"


def redact(key: str, value: Any) -> Any:
    lowered = key.lower()
    if lowered in _SENSITIVE_KEYS:
        return REDACTED
    if lowered in _EMAIL_KEYS and isinstance(value, str):
        return mask_email(value)
    return value


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    # Standard LogRecord attributes that should not be included as extra fields
    _STANDARD_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname',
        'process', 'processName', 'relativeCreated', 'thread', 'threadName',
        'exc_info', 'exc_text', 'stack_info', 'taskName'
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # logger.info("message", extra={"userId": "123"}) lands in record.__dict__
        for key, value in record.__dict__.items():
            if key not in self._STANDARD_ATTRS and not callable(value):
                log_data[key] = redact(key, value)

        return json.dumps(log_data, default=str)


def setup_structured_logging(level: int = logging.INFO):
    """Configure structured JSON logging for the application.

    This configures all loggers including uvicorn access logs.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.handlers = [handler]
    uvicorn_access.setLevel(logging.WARNING)
