"""structlog setup driven by LOG_LEVEL / LOG_FORMAT."""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        fmt: ``json`` for machine-readable output, anything else for console output
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # stdlib loggers (openai client, sqlalchemy, uvicorn) share the same stream
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)

    renderer: structlog.types.Processor
    if fmt.lower() == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
