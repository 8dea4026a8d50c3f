"""Central logging setup for daily_rounds entrypoints."""

from __future__ import annotations

import logging
import logging.config
import os

from daily_rounds.paths import project_file

NOISY_LIBRARY_LOGGERS = ("urllib3", "urllib3.connectionpool")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _resolve_level(default: str = "INFO") -> int:
    level_name = os.getenv("LOG_LEVEL", default).upper()
    return getattr(logging, level_name, logging.INFO)


def _quiet_library_loggers() -> None:
    for logger_name in NOISY_LIBRARY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.INFO)


def configure_logging() -> logging.Logger:
    logger = logging.getLogger()
    config_path = project_file("logging.ini")
    if config_path.is_file():
        logging.config.fileConfig(str(config_path), disable_existing_loggers=False)
    elif not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.setLevel(_resolve_level())
    _quiet_library_loggers()
    return logger
