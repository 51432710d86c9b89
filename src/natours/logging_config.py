"""structlog configuration.

Learn: Every module does `logger = structlog.get_logger()` and logs
events as dotted names with keyword fields (`auth.login_failed`,
email=...). This module decides how those events are rendered:
coloured key=value lines in development, one JSON object per line
everywhere else. merge_contextvars pulls in request_id / user_id bound
by the middleware and the auth dependency.
"""

import logging

import structlog

from natours.config import Settings


def configure_logging(config: Settings) -> None:
    level = logging.DEBUG if config.debug else logging.INFO
    logging.basicConfig(level=level, format="%(message)s")

    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.is_development
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
