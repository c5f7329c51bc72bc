"""Unit tests for logging setup."""

import logging

import pytest

from boardmgr.logging_config import parse_level, setup_logging


@pytest.fixture
def root_logger():
    logger = logging.getLogger()
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers[len(handlers):]:
        handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level(logging.ERROR) == logging.ERROR
    assert parse_level("nonsense") == logging.INFO


def test_log_file_installed_once(root_logger, tmp_path):
    log_file = tmp_path / "logs" / "boardmgr.log"
    before = len(root_logger.handlers)

    setup_logging(log_file, "debug")
    setup_logging(log_file, "debug")
    logging.debug("index loaded")

    assert len(root_logger.handlers) == before + 1
    assert root_logger.level == logging.DEBUG
    root_logger.handlers[-1].flush()
    assert "DEBUG - index loaded" in log_file.read_text()
