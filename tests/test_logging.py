"""
Tests for logger setup and stdout/stderr redirection.
"""

from pathlib import Path
import logging
import sys

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from loop_registration.utils.logging import (
    configure_package_logging,
    redirect_stdout_stderr_to_logger,
    setup_logger,
)


def test_setup_logger_is_idempotent():
    logger = setup_logger("loop_registration.tests.idempotent")
    n_handlers = len(logger.handlers)
    assert setup_logger("loop_registration.tests.idempotent") is logger
    assert len(logger.handlers) == n_handlers


def test_setup_logger_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    logger = setup_logger("loop_registration.tests.file", log_file=str(log_file))
    logger.info("hello from the test")
    for handler in logger.handlers:
        handler.flush()
    assert "hello from the test" in log_file.read_text(encoding="utf-8")


def test_redirect_forwards_complete_lines(caplog):
    logger = logging.getLogger("loop_registration.tests.redirect")
    with caplog.at_level(logging.DEBUG, logger="loop_registration.tests.redirect"):
        with redirect_stdout_stderr_to_logger(logger):
            print("first line")
            sys.stdout.write("partial")
            sys.stderr.write("to stderr\n")

    messages = [r.getMessage() for r in caplog.records]
    assert "first line" in messages
    assert "to stderr" in messages
    # Partial lines are flushed on exit
    assert "partial" in messages


def test_configure_package_logging_reaches_existing_loggers(tmp_path):
    package = "loop_registration.tests.configured"
    module_logger = setup_logger(f"{package}.module")
    other_logger = setup_logger("loop_registration.tests.unconfigured")
    assert module_logger.level == logging.INFO

    log_file = tmp_path / "logs" / "package.log"
    configure_package_logging(logging.DEBUG, str(log_file), package=package)
    # Calling twice does not attach the file again
    configure_package_logging(logging.DEBUG, str(log_file), package=package)

    assert module_logger.level == logging.DEBUG
    assert all(h.level == logging.DEBUG for h in module_logger.handlers)
    assert sum(isinstance(h, logging.FileHandler) for h in module_logger.handlers) == 1
    assert other_logger.level == logging.INFO

    module_logger.debug("debug from a module logger")
    for handler in module_logger.handlers:
        handler.flush()
    assert "debug from a module logger" in log_file.read_text(encoding="utf-8")

    for handler in list(module_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            module_logger.removeHandler(handler)
            handler.close()
