import logging
import logging.config

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "root": {"handlers": ["console"], "level": "INFO"},
    "loggers": {
        "uvicorn.access": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
        "anthropic": {"level": "WARNING"},
    },
}


def setup_logging(level: str | int = "INFO") -> None:
    if isinstance(level, int):
        level = logging.getLevelName(level)
    config = dict(LOGGING_CONFIG)
    config["root"] = {**LOGGING_CONFIG["root"], "level": str(level).upper()}
    logging.config.dictConfig(config)
