import logging
import logging.config
from typing import Any

from .settings import get_settings


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEBUG_FORMAT = "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"


def setup_logging() -> dict[str, Any]:
    """Configure the root logger from LOG_LEVEL and quiet chatty libraries."""
    settings = get_settings()
    level = settings.LOG_LEVEL.upper()

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": DEBUG_FORMAT if settings.DEBUG else DEFAULT_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            },
        },
        "loggers": {
            "sqlalchemy.engine": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "uvicorn.access": {"level": "WARNING" if settings.ENVIRONMENT == "production" else level},
        },
        "root": {"level": level, "handlers": ["console"]},
    }

    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug(f"Logging configured at {level} for {settings.ENVIRONMENT}")
    return config
