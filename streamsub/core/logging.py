"""
Logging configuration for the application
"""
import logging
import logging.config
from typing import Optional

from streamsub.core.config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging once for the process
    """
    log_level = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "streamsub": {"level": log_level},
                "apscheduler": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
            "root": {"level": log_level, "handlers": ["console"]},
        }
    )
