"""
Logging configuration for chime.

Sets up logging with dictConfig so it can be reconfigured safely, with the
level taken from the environment.

The terminal client owns stdout, so console logging goes to stderr and can be
switched off entirely in favour of a rotating log file.

Environment Variables:
    LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO if not set or invalid.

Usage:
    from chime.logger_config import setup_logging
    setup_logging()  # Uses LOG_LEVEL env var, defaults to INFO

    # File-only, for use underneath a full-screen UI:
    setup_logging(console=False, log_file="~/.chime/chime.log")
"""

import logging
import logging.config
import os
from pathlib import Path
from typing import Optional


def get_log_level() -> int:
    """
    Get log level from LOG_LEVEL environment variable.

    Supports: DEBUG, INFO, WARNING, ERROR, CRITICAL (case-insensitive).
    Defaults to INFO if not set or invalid.

    Returns:
        Logging level constant (e.g., logging.INFO).
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)

    if level is None or not isinstance(level, int):
        return logging.INFO

    return level


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    console: bool = True,
) -> None:
    """
    Configure logging for chime using dictConfig.

    Args:
        level: Logging level. If None, reads from LOG_LEVEL env var (default: INFO).
        format_string: Optional custom format string.
        log_file: Optional file path to write logs to (with rotation).
        console: Whether to log to stderr.
    """
    if level is None:
        level = get_log_level()

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {},
        "root": {
            "level": level,
            "handlers": [],
        },
    }

    if console:
        config["handlers"]["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "standard",
            "stream": "ext://sys.stderr",
        }
        config["root"]["handlers"].append("console")

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "standard",
            "filename": str(log_path),
            "maxBytes": 10_485_760,  # 10 MB
            "backupCount": 5,
        }
        config["root"]["handlers"].append("file")

    if not config["root"]["handlers"]:
        config["handlers"]["null"] = {"class": "logging.NullHandler"}
        config["root"]["handlers"].append("null")

    logging.config.dictConfig(config)
