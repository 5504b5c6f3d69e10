"""Logging configuration for the microfrontend drift engine."""

import logging
import os
import sys
from typing import Mapping, Optional

from .config import redact_secrets

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        if sys.stdout.isatty():  # Only use colors for terminal output
            record = logging.makeLogRecord(record.__dict__)
            log_color = self.COLORS.get(record.levelname, '')
            record.levelname = f"{log_color}{record.levelname}{self.RESET}"
            record.name = f"\033[34m{record.name}{self.RESET}"  # Blue for logger name

        return super().format(record)


class SecretRedactingFilter(logging.Filter):
    """
    Strip configured secret values out of log records.

    The message is rendered once with its arguments and the redacted text
    replaces it, so secrets passed as ``%s`` arguments are caught too.
    """

    def __init__(self, secrets: Mapping[str, str]):
        super().__init__()
        self.secrets = dict(secrets)

    def filter(self, record: logging.LogRecord) -> bool:
        if self.secrets:
            record.msg = redact_secrets(record.getMessage(), self.secrets)
            record.args = None
        return True


def setup_logging(log_level: Optional[str] = None,
                  secrets: Optional[Mapping[str, str]] = None) -> None:
    """Setup centralized logging configuration for the engine, server and scripts."""

    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    if secrets:
        handler.addFilter(SecretRedactingFilter(secrets))

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )

    configure_external_loggers()


def configure_external_loggers() -> None:
    """Configure logging levels for external libraries."""
    external_loggers = {
        'urllib3': logging.WARNING,
        'requests': logging.WARNING,
        'apscheduler': logging.WARNING,
        'watchdog': logging.WARNING,
        'uvicorn.access': logging.WARNING,
    }

    for logger_name, level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(level)
