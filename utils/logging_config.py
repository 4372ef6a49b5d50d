"""
Logging setup for the scheduler's entry points.

Modules log through ``logging.getLogger(__name__)`` and never attach
handlers themselves; ``configure_package_logging`` wires the package
loggers to stdout and, optionally, a rotating log file. All package loggers
share one handler set so a log file has exactly one rotating writer.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional

PACKAGE_LOGGERS = ("scheduling", "db", "scheduler", "api")

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(log_level: str) -> int:
    return getattr(logging, log_level.upper(), logging.INFO)


def build_handlers(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: str = "logs",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> List[logging.Handler]:
    """Console handler plus a rotating file handler when ``log_file`` is given."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_dir_path = Path(log_dir)
        log_dir_path.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_dir_path / log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(_level(log_level))
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    name: str,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: str = "logs",
    handlers: Optional[List[logging.Handler]] = None,
) -> logging.Logger:
    """
    Attach handlers to one logger.

    Args:
        name: Logger name, usually a top-level package
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names mean INFO
        log_file: File name inside ``log_dir``; ignored when ``handlers`` is given
        log_dir: Directory for log files, created if missing
        handlers: Existing handlers to share instead of building new ones

    Returns:
        The configured logger. A logger that already has handlers only
        gets its level updated.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(log_level))

    if logger.handlers:
        return logger

    if handlers is None:
        handlers = build_handlers(log_level, log_file, log_dir)
    for handler in handlers:
        logger.addHandler(handler)

    return logger


def configure_package_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    packages: Iterable[str] = PACKAGE_LOGGERS,
    log_dir: str = "logs",
) -> List[logging.Handler]:
    """
    Route every package logger to one shared handler set; call once per process.

    Returns:
        The shared handlers (empty when every logger was already configured)
    """
    packages = list(packages)
    unconfigured = [name for name in packages if not logging.getLogger(name).handlers]
    handlers = build_handlers(log_level, log_file, log_dir) if unconfigured else []

    for package in packages:
        setup_logging(package, log_level=log_level, handlers=handlers)
    return handlers
