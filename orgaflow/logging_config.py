"""structlog setup: console output in development, JSON lines otherwise."""

import logging
import sys
from typing import Optional

import structlog

from orgaflow.config import settings

# Libraries that log every statement or connection at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg")


def setup_logging(level: Optional[str] = None) -> None:
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.ENVIRONMENT == "development"
        else structlog.processors.JSONRenderer()
    )

    # uvicorn and alembic still log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
