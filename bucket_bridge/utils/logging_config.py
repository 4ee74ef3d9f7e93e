"""
Structured logging setup.

Library modules only call ``structlog.get_logger(__name__)``; entry points
call ``configure_logging`` once before doing any work.
"""

import logging
import sys

import structlog

from .env_config import AppSettings, get_settings


def configure_logging(settings: AppSettings | None = None) -> None:
    """Configure stdlib logging and structlog from application settings."""
    settings = settings or get_settings()
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)

    logging.basicConfig(level=level, format=settings.log_format, stream=sys.stderr, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )

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
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
