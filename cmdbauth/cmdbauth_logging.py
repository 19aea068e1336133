import logging
from configparser import RawConfigParser
from logging import Logger
from logging import config as logging_config
from typing import Optional

from cmdbauth import config

# Default logging configuration
DEFAULT_LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "root": {"level": "INFO", "handlers": ["consoleHandler"]},
    "loggers": {
        "cmdbauth": {
            "level": "INFO",
        },
    },
    "handlers": {
        "consoleHandler": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "formatter_formatter",
            "stream": "ext://sys.stdout",
        }
    },
    "formatters": {
        "formatter_formatter": {
            "format": "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
}


def apply_levels(raw_config: RawConfigParser) -> None:
    """Apply the ``level`` of every ``[logger_<name>]`` section to the named logger.

    ``[logger_root]`` sets the root logger. Invalid levels are reported and ignored.
    """
    for section in raw_config.sections():
        if not section.startswith("logger_"):
            continue
        name = section.split("_", 1)[1]
        level = raw_config.get(section, "level", fallback="").upper()
        if not level:
            continue
        if not isinstance(logging.getLevelName(level), int):
            logging.getLogger("cmdbauth").error("Invalid level %s for logger %s", level, name)
            continue
        logging.getLogger(None if name == "root" else name).setLevel(level)


def _safe_get_config(component: str) -> Optional[RawConfigParser]:
    try:
        return config.get_config(component)
    except Exception:
        return None


def init_logging(loggername: str) -> Logger:
    """Install the default console configuration and return ``cmdbauth.<loggername>``.

    Levels from the ``logging`` component configuration are applied on top of the
    defaults.
    """
    logging_config.dictConfig(DEFAULT_LOGGING_CONFIG)

    raw_config = _safe_get_config("logging")
    if raw_config:
        apply_levels(raw_config)

    return logging.getLogger(f"cmdbauth.{loggername}")
