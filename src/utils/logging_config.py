"""Centralized logging configuration with environment variable support."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

# supabase-py fans out to these clients; httpx logs every request at INFO
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "supabase",
    "postgrest",
    "gotrue",
    "realtime",
    "storage3",
)


class LoggingConfig:
    """Logging settings read once from the environment."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_CORRELATION_ID_HEADER = os.environ.get("LOG_CORRELATION_ID_HEADER", "X-Correlation-ID")
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))
    SERVICE_NAME = os.environ.get("LOG_SERVICE_NAME", "wholesale-backend")

    _configured = False

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                rename_fields={"levelname": "level"},
                static_fields={"service": cls.SERVICE_NAME},
                timestamp=True,
            )
        return logging.Formatter("%(asctime)s %(levelname)-7s [%(name)s] %(message)s")

    @classmethod
    def setup_logging(cls, force: bool = False) -> None:
        """Route all logging to stdout once per process.

        Each serverless handler calls this at import; later calls are no-ops
        unless ``force`` is set.
        """
        if cls._configured and not force:
            return

        level = getattr(logging, cls.LOG_LEVEL, logging.INFO)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(cls.build_formatter())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        root_logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        cls._configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
