"""
logging_config.py — Centralized Logging Configuration for crm-board

Loguru is the only backend. The services and the board controller log
through stdlib getLogger("crmboard.*"); an intercept handler forwards
those records so one sink configuration covers both styles.

Business Rules:
- JSON lines on stdout when APP_ENV=production, colored text otherwise
- LOG_LEVEL picks the threshold (default INFO)
- LOG_FILE, when set, adds a rotating JSON file sink (50 MB, 7 days)
- httpx / sqlalchemy / uvicorn access chatter is held at WARNING

Called by: crmboard/main.py (lifespan startup)
Depends on: APP_ENV, LOG_LEVEL, LOG_FILE env vars
"""

import logging
import os
import sys

from loguru import logger

_DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "multipart")


def setup_logging() -> None:
    """Configure Loguru sinks and route stdlib logging into them.

    Safe to call more than once; every call starts from a clean handler list.
    """
    logger.remove()

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    production = os.getenv("APP_ENV", "development").lower() == "production"

    if production:
        logger.add(sys.stdout, level=level, format="{message}", serialize=True)
    else:
        logger.add(sys.stdout, level=level, format=_DEV_FORMAT, colorize=True)

    log_file = os.getenv("LOG_FILE")
    if log_file:
        logger.add(log_file, level=level, rotation="50 MB", retention="7 days",
                   compression="gz", serialize=True)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging configured", level=level, production=production, file=log_file)


class _InterceptHandler(logging.Handler):
    """Forward a stdlib LogRecord to Loguru, keeping the original call site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
