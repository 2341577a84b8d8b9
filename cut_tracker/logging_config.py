"""Process-wide logging set-up for the cut tracker server."""

from __future__ import annotations

import logging
from logging.config import dictConfig

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a console handler on the root logger and set ``level``.

    When the host (uvicorn, pytest) already installed root handlers they are
    kept and only the levels are adjusted.
    """

    level = level.upper()
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        logging.getLogger("cut_tracker").setLevel(level)
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                }
            },
            "loggers": {"cut_tracker": {"level": level}},
            "root": {"handlers": ["console"], "level": level},
        }
    )


__all__ = ["configure_logging", "LOG_FORMAT"]
