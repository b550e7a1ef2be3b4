"""
Logging Utilities

This module sets up logging for the project and includes a helper to
redirect chatty library stdout/stderr (e.g. Open3D) to our logger.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from contextlib import contextmanager, redirect_stdout, redirect_stderr

CONSOLE_FORMATTER = logging.Formatter(
    '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
# Loops may run in worker processes; keep the process in file logs
FILE_FORMATTER = logging.Formatter(
    '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(CONSOLE_FORMATTER)
    logger.addHandler(console_handler)

    if log_file:
        logger.addHandler(_file_handler(log_file, level))

    return logger


def _file_handler(log_file: str, level: int) -> logging.FileHandler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(FILE_FORMATTER)
    return file_handler


def configure_package_logging(level: int = logging.INFO,
                              log_file: Optional[str] = None,
                              package: str = "loop_registration") -> None:
    """
    Apply a level and an optional log file to every logger of a package.

    Module loggers are created by setup_logger at import time with the
    default level, before any configuration has been read. Call this once
    the configuration is known.

    Args:
        level: Logging level for the loggers and their handlers
        log_file: Optional log file shared by all loggers of the package
        package: Logger name prefix to configure
    """
    shared_file = _file_handler(log_file, level) if log_file else None
    target = os.path.abspath(log_file) if log_file else None

    for name, candidate in list(logging.root.manager.loggerDict.items()):
        if not isinstance(candidate, logging.Logger):
            continue
        if name != package and not name.startswith(package + "."):
            continue

        candidate.setLevel(level)
        for handler in candidate.handlers:
            handler.setLevel(level)

        has_file = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == target
            for h in candidate.handlers
        )
        if shared_file is not None and not has_file:
            candidate.addHandler(shared_file)


class _StreamToLogger:
    """
    File-like stream object that forwards complete lines to a logger.

    Partial lines are buffered until a newline or an explicit flush.
    """

    def __init__(self, logger: logging.Logger, level: int = logging.DEBUG):
        self.logger = logger
        self.level = level
        self._buffer = ""

    def write(self, msg: str) -> int:
        if not isinstance(msg, str):
            msg = str(msg)
        self._buffer += msg
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self._emit(line)
        return len(msg)

    def flush(self) -> None:
        if self._buffer:
            self._emit(self._buffer)
            self._buffer = ""

    def _emit(self, line: str) -> None:
        text = line.rstrip()
        if text:
            self.logger.log(self.level, text)


@contextmanager
def redirect_stdout_stderr_to_logger(logger: logging.Logger, level: int = logging.DEBUG):
    """
    Context manager that redirects Python-level stdout and stderr to a logger.

    Args:
        logger: Target logger
        level: Logging level to use (default: DEBUG)
    """
    out_stream = _StreamToLogger(logger, level=level)
    err_stream = _StreamToLogger(logger, level=level)
    try:
        with redirect_stdout(out_stream), redirect_stderr(err_stream):
            yield
    finally:
        out_stream.flush()
        err_stream.flush()
