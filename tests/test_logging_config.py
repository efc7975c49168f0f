"""
Tests for netguard/logging_config.py
"""

import logging
import logging.handlers

import pytest

from netguard import logging_config


@pytest.fixture
def fresh_logger(monkeypatch):
    monkeypatch.setattr(logging_config, '_configured', False)
    logger = logging.getLogger("netguard")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


class TestSetupLogging:

    @pytest.mark.unit
    def test_level_and_stream_handler(self, fresh_logger):
        logger = logging_config.setup_logging("DEBUG")
        assert logger is fresh_logger
        assert logger.level == logging.DEBUG
        assert any(type(h) is logging.StreamHandler for h in logger.handlers)

    @pytest.mark.unit
    def test_rotating_file_handler(self, fresh_logger, tmp_path):
        log_file = tmp_path / "logs" / "netguard.log"

        logging_config.setup_logging("INFO", str(log_file))
        logging.getLogger("netguard.test").info("hello file")

        rotating = [h for h in fresh_logger.handlers
                    if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 5 * 1024 * 1024
        assert rotating[0].backupCount == 3
        rotating[0].flush()
        assert "hello file" in log_file.read_text()

    @pytest.mark.unit
    def test_second_call_only_changes_level(self, fresh_logger):
        logging_config.setup_logging("INFO")
        handler_count = len(fresh_logger.handlers)

        logging_config.setup_logging("ERROR")

        assert len(fresh_logger.handlers) == handler_count
        assert fresh_logger.level == logging.ERROR
