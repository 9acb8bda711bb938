"""Tests for server logging configuration."""

import logging
from unittest.mock import patch

import pytest

from src.services.logging import get_log_level, setup_server_logging


@pytest.fixture
def log_file(tmp_path):
    return tmp_path / "logs" / "server.log"


class TestServerLogging:
    """Test server logging configuration."""

    def setup_method(self):
        """Save original handlers before each test."""
        self.root_logger = logging.getLogger()
        self.original_handlers = self.root_logger.handlers.copy()
        self.original_level = self.root_logger.level

    def teardown_method(self):
        """Restore original handlers after each test."""
        for handler in self.root_logger.handlers[:]:
            handler.close()
            self.root_logger.removeHandler(handler)
        for handler in self.original_handlers:
            self.root_logger.addHandler(handler)
        self.root_logger.setLevel(self.original_level)

    def test_creates_log_directory_and_two_handlers(self, log_file) -> None:
        """Verify stdout + file handlers and the missing logs directory."""
        assert not log_file.parent.exists()

        setup_server_logging(str(log_file))

        assert log_file.parent.exists()
        kinds = sorted(type(h).__name__ for h in self.root_logger.handlers)
        assert kinds == ["FileHandler", "StreamHandler"]

    def test_level_from_environment(self, log_file) -> None:
        """Verify LOG_LEVEL drives root and handler levels."""
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}, clear=False):
            setup_server_logging(str(log_file))

        assert self.root_logger.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in self.root_logger.handlers)

    def test_level_argument_overrides_environment(self, log_file) -> None:
        """Verify an explicit level (from Settings) wins over LOG_LEVEL."""
        with patch.dict("os.environ", {"LOG_LEVEL": "INFO"}, clear=False):
            setup_server_logging(str(log_file), level="warning")

        assert self.root_logger.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        with patch.dict("os.environ", {"LOG_LEVEL": "CHATTY"}, clear=False):
            assert get_log_level() == logging.INFO

    def test_file_lines_carry_timestamp_logger_and_level(self, log_file) -> None:
        """Verify the format: [YYYY-MM-DD HH:MM:SS] name - LEVEL - message."""
        setup_server_logging(str(log_file), level="INFO")

        logging.getLogger("src.services.invoice_generator").warning(
            "Skipped unit %d (%s): %s", 7, "Unit 7", "invalid rent amount"
        )

        contents = log_file.read_text()
        assert "[20" in contents
        assert "src.services.invoice_generator - WARNING - Skipped unit 7 (Unit 7): invalid rent amount" in contents

    def test_repeated_setup_does_not_duplicate_handlers(self, log_file) -> None:
        """Verify existing handlers are replaced, not stacked."""
        stray = logging.StreamHandler()
        self.root_logger.addHandler(stray)

        setup_server_logging(str(log_file))
        setup_server_logging(str(log_file))

        assert len(self.root_logger.handlers) == 2
        assert stray not in self.root_logger.handlers

    def test_sql_chatter_stays_at_warning(self, log_file) -> None:
        setup_server_logging(str(log_file), level="INFO")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
