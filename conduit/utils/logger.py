"""Logging configuration for the conduit client."""

import logging
import logging.handlers
import sys
import structlog
from pathlib import Path
from typing import List, Optional

LOGGER_NAMESPACE = "conduit"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_handlers(log_file: Optional[str], max_size: int, backup_count: int) -> List[logging.Handler]:
    # stderr keeps stdout free for call results
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=max_size,
            backupCount=backup_count
        ))

    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handlers


def setup_logging(log_level: str = "WARNING",
                  log_file: Optional[str] = None,
                  max_size: int = 10485760,
                  backup_count: int = 5) -> logging.Logger:
    """
    Set up logging for the ``conduit`` logger namespace.

    Handlers are attached to the ``conduit`` logger only, so the root logger
    and other libraries keep whatever configuration the host application
    gave them. Calling this again replaces the handlers installed earlier.

    Args:
        log_level: Logging level
        log_file: Optional log file path
        max_size: Maximum log file size in bytes
        backup_count: Number of backup files to keep

    Returns:
        The configured ``conduit`` logger
    """
    log_level = log_level.upper()

    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    for handler in _build_handlers(log_file, max_size, backup_count):
        package_logger.addHandler(handler)
    package_logger.setLevel(getattr(logging, log_level))
    package_logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer() if log_level == "DEBUG" else structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return package_logger


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Names outside the ``conduit`` namespace are nested under it so their
    output goes through the handlers from :func:`setup_logging`.

    Args:
        name: Logger name, usually ``__name__``

    Returns:
        Structured logger instance
    """
    if name != LOGGER_NAMESPACE and not name.startswith(LOGGER_NAMESPACE + "."):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return structlog.get_logger(name)
