"""
Rich-based logging system

Library modules only call get_logger(); the CLI entry point is the one
place that calls setup_logging().
"""
import sys
import logging
from typing import Optional, Iterable
from pathlib import Path

from rich.logging import RichHandler
from rich.console import Console
from rich.traceback import install as install_traceback


# Global console instances
_stdout_console = Console(file=sys.stdout)
_stderr_console = Console(file=sys.stderr)

# Third-party loggers that are chatty at INFO (handshakes, every HTTP probe)
NOISY_LOGGERS = ("paramiko", "httpx", "httpcore", "websockets", "asyncio")

FILE_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rich_tracebacks: bool = True,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Setup Rich logging system.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        rich_tracebacks: Enable rich tracebacks
        quiet_loggers: Loggers held at WARNING unless level is DEBUG
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if rich_tracebacks:
        install_traceback(show_locals=False, width=120)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Log lines go to stderr; stdout carries command output
    rich_handler = RichHandler(
        console=_stderr_console,
        show_time=True,
        show_path=log_level <= logging.DEBUG,
        rich_tracebacks=rich_tracebacks,
        markup=False,
        show_level=True,
    )
    rich_handler.setLevel(log_level)
    root_logger.addHandler(rich_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root_logger.addHandler(file_handler)

    third_party_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Get logger instance (usually for __name__)"""
    return logging.getLogger(name)


def get_stdout_console() -> Console:
    """Get stdout console for user-facing output"""
    return _stdout_console


def get_stderr_console() -> Console:
    """Get stderr console for errors and logs"""
    return _stderr_console
