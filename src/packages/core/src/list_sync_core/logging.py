"""Structured logging setup shared by the API and the worker."""
import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Render JSON log lines, dropping events below ``level``."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )
