"""Global loguru logging configuration"""

import sys
import logging
from contextvars import ContextVar
from typing import Optional

from loguru import logger

# Provider being probed, attached to httpx request logs
current_provider: ContextVar[str] = ContextVar("current_provider", default="")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

INTERCEPTED_LOGGERS = ("httpx", "sqlalchemy.engine", "aiosqlite")


class InterceptHandler(logging.Handler):
    """Route stdlib records from httpx, sqlalchemy and aiosqlite into loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real call site
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        message = record.getMessage()
        provider_name = current_provider.get()
        if provider_name and record.name.startswith("httpx"):
            message = f"[Provider: {provider_name}] {message}"

        logger.opt(depth=depth, exception=record.exc_info).log(level, message)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure loguru with a stderr sink and an optional rotating file

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file, or None for stderr only
    """
    logger.remove()
    # stdout carries the CLI's JSON output
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file:
        logger.add(log_file, level=log_level, rotation="10 MB", retention=3, encoding="utf-8")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    # aiosqlite logs every statement at DEBUG
    logging.getLogger("aiosqlite").setLevel(logging.INFO)

    logger.debug(f"Logging initialized: level={log_level}, file={log_file}")


def set_provider_context(provider_name: str) -> None:
    """Tag httpx logs of the current task with a provider name"""
    current_provider.set(provider_name)


def clear_provider_context() -> None:
    current_provider.set("")


def get_logger():
    """Get the configured logger instance"""
    return logger
