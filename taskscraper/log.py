"""
Logging setup for the task scraper.

Every module logs through ``structlog.get_logger()`` with key/value fields;
this module wires structlog to the standard library once per process.

Request URLs often carry credentials in their userinfo or query string. The
scraper redacts the URLs it binds itself, and ``setup_logging`` adds two
safety nets: a structlog processor for URL fields bound elsewhere, and a
stdlib filter for the request lines HTTPX and httpcore log on their own.
"""
import logging
from typing import Any, Dict

import httpx
import structlog

from taskscraper.config import LogLevel, ScraperSettings
from taskscraper.fetcher.redact import redact_url

# Set up structured logger
logger = structlog.get_logger()

# Event fields holding URLs
URL_FIELDS = ("url", "request_url", "final_url", "location")

# Transport libraries that log every request at INFO
TRANSPORT_LOGGERS = ("httpx", "httpcore")


def redact_url_fields(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor masking credentials in URL fields."""
    for field in URL_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, (str, httpx.URL)):
            event_dict[field] = redact_url(value)
    return event_dict


class RedactURLFilter(logging.Filter):
    """Mask credentials in URL arguments of stdlib log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_url(arg) if isinstance(arg, httpx.URL) else arg
                for arg in record.args
            )
        return True


def setup_logging(settings: ScraperSettings) -> None:
    """Set up structured logging based on configuration."""
    log_level = settings.log_level.value

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_url_fields,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.structured_logging
            else structlog.dev.ConsoleRenderer()
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    numeric_level = getattr(logging, log_level, logging.INFO)
    logging.basicConfig(level=numeric_level, format="%(message)s")
    logging.getLogger().setLevel(numeric_level)

    # Per-request transport lines only show up when debugging
    transport_level = logging.DEBUG if settings.log_level == LogLevel.DEBUG else logging.WARNING
    for name in TRANSPORT_LOGGERS:
        transport_logger = logging.getLogger(name)
        transport_logger.setLevel(transport_level)
        if not any(isinstance(f, RedactURLFilter) for f in transport_logger.filters):
            transport_logger.addFilter(RedactURLFilter())

    logger.info("Logging initialized", level=log_level, transport_level=logging.getLevelName(transport_level))
