# influx_catalog/logger.py
# Centralized logging utility.
# Configures loguru once and funnels the stdlib logging used by influxdb_client/urllib3 into it.
import logging
import sys

from loguru import logger


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO"):
    logger.remove()
    logger.add(sys.stderr, level=level)
    logging.basicConfig(handlers=[_InterceptHandler()], level=logging.WARNING, force=True)
    logger.info("Logger initialized at level {}", level)
    return logger


def mask_token(token: str) -> str:
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"
