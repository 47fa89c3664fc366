# utils/logger.py
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import List

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
_DEFAULT_FILE = os.getenv("LOG_FILE", "logs/signal_engine.log")
_DEFAULT_MAX_MB = int(os.getenv("LOG_MAX_MB", "5"))
_DEFAULT_BACKUPS = int(os.getenv("LOG_BACKUPS", "5"))

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# top-level packages whose module loggers (logging.getLogger(__name__)) share one set of handlers
PACKAGE_LOGGERS = ("core", "modules", "utils")


def _level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def _handlers(level: int, log_file: str | None, to_console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=_DEFAULT_MAX_MB * 1024 * 1024,
            backupCount=_DEFAULT_BACKUPS,
            encoding="utf-8",
        ))
    if to_console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(_FORMATTER)
        handler.setLevel(level)
    return handlers


def setup_logger(name: str,
                 level: str | int = _DEFAULT_LEVEL,
                 log_file: str | None = _DEFAULT_FILE,
                 to_console: bool = True) -> logging.Logger:
    """
    Create/get a logger with console and rotating-file handlers.
    Re-using the same name returns the same configured logger (no duplicate handlers).
    An empty ``log_file`` disables the file handler.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = _level(level)
    logger.setLevel(level)
    for handler in _handlers(level, log_file, to_console):
        logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return logger


def setup_package_logging(level: str | int = _DEFAULT_LEVEL,
                          log_file: str | None = _DEFAULT_FILE,
                          to_console: bool = True) -> None:
    """
    Attach one shared set of handlers to the package loggers so that every
    module logger below them (``modules.indicator``, ``modules.sl_tp_planner``...)
    ends up in the same file and console stream. Safe to call more than once.
    """
    level = _level(level)
    handlers = None
    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if logger.handlers:
            continue
        if handlers is None:
            handlers = _handlers(level, log_file, to_console)
        for handler in handlers:
            logger.addHandler(handler)
