"""
Structured logging setup
"""
import logging
import sys
from typing import Optional

import structlog

from config import settings


def setup_logging(service_name: Optional[str] = None) -> None:
    """
    Configure structlog on top of the standard logging sink

    Args:
        service_name: Name attached to every event (e.g. "red-flag-monitor")
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if service_name:
        processors.insert(0, lambda logger, method_name, event_dict:
                          dict(event_dict, service=service_name))

    if settings.STRUCTURED_LOGGING:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        handlers=[logging.StreamHandler()],
        force=True,
    )

    # Reduce noise from verbose libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("twilio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (usually named after the module)"""
    return structlog.get_logger(name)
