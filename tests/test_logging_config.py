"""Tests for root logger setup."""

import logging

import pytest

from site_spider.logging_config import setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_writes_to_log_file(tmp_path):
    log_file = tmp_path / "logs" / "crawl.log"

    setup_logging("DEBUG", log_file=str(log_file))
    logging.getLogger("site_spider.crawl").debug("Checkpoint: 3 queued")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logging.getLogger().level == logging.DEBUG
    assert "Checkpoint: 3 queued" in log_file.read_text(encoding="utf-8")


def test_unknown_level_falls_back_to_info():
    setup_logging("chatty")

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_repeated_setup_replaces_handlers():
    setup_logging("INFO")
    setup_logging("WARNING")

    assert len(logging.getLogger().handlers) == 1
