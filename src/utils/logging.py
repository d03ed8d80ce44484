"""Structured logging: correlation ids, masking of buyer PII and credentials, operation timing."""

import hashlib
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from src.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Order matters: JWTs and bearer tokens go before the generic key=value rule
_MASK_PATTERNS = [
    (re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE), '[REDACTED_EMAIL]'),
    (re.compile(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+'), '[REDACTED_JWT]'),
    (re.compile(r'(?i)bearer\s+[A-Za-z0-9._-]+'), 'Bearer [REDACTED]'),
    (re.compile(r'\bre_[A-Za-z0-9_]{8,}'), '[REDACTED_RESEND_KEY]'),
    (re.compile(r'(?i)(api[_-]?key|apikey|token|secret|password)[\s:=]+([A-Za-z0-9_-]{20,})'), r'\1=[REDACTED]'),
    (re.compile(r'\b\+?\d[\d\s().-]{7,}\d\b'), '[REDACTED_PHONE]'),
]


def generate_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of one request.

    A caller-supplied id (usually the X-Correlation-ID header) is reused;
    otherwise a fresh one is generated. The previous id is restored on exit.
    """
    correlation_id = correlation_id or generate_correlation_id()
    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Redact emails, tokens, keys and phone numbers from free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    for pattern, replacement in _MASK_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Shorten an auth user id to a prefix plus a stable hash."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not user_id:
        return user_id
    if len(user_id) <= 12:
        return user_id
    digest = hashlib.sha256(user_id.encode()).hexdigest()[:8]
    return f"{user_id[:4]}...{digest}"


def mask_email(email: Optional[str]) -> Optional[str]:
    if not LoggingConfig.LOG_MASK_SENSITIVE or not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


def _mask_field(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if key == "error":
        # Remote error text can echo tokens or addresses back
        return mask_sensitive_data(value)
    if key.endswith("email"):
        return mask_email(value)
    return value


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into structured fields.

    Every record carries a UTC timestamp and the current correlation id.
    ``error`` and ``*email`` fields are masked before they reach a handler.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _fields(self, **kwargs: Any) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
        correlation_id = get_correlation_id()
        if correlation_id:
            fields["correlation_id"] = correlation_id
        fields.update({key: _mask_field(key, value) for key, value in kwargs.items()})
        return fields

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._fields(**kwargs), exc_info=exc_info)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **kwargs)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Time a block and log its duration and outcome.

    The completion record carries ``outcome`` = ok or error; anything slower
    than LOG_SLOW_OPERATION_THRESHOLD_MS also logs a warning. Exceptions
    propagate unchanged.
    """
    logger = logger or get_structured_logger(__name__)
    threshold_ms = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS

    logger.debug(f"Starting {operation_name}", operation=operation_name, **context)
    started = time.perf_counter()
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            f"Completed {operation_name}",
            operation=operation_name,
            outcome=outcome,
            processing_time_ms=elapsed_ms,
            **context
        )
        if elapsed_ms > threshold_ms:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold_ms,
                **context
            )
