"""Process-wide logging configuration."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from rolemate.settings import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure application-wide logging once during startup.
    Safe to call repeatedly; second invocation becomes a no-op.
    """
    if logging.getLogger().handlers:
        return

    resolved = settings or get_settings()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                }
            },
            "root": {"handlers": ["console"], "level": resolved.logging_level},
            "loggers": {
                "sqlalchemy.engine": {
                    "level": "INFO" if resolved.database_echo else "WARNING",
                },
            },
        }
    )


__all__ = ["configure_logging"]
