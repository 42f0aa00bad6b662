"""
test_logging.py - Unit tests for logging setup

Tests:
- setup_logging installs console (and optional file) handlers on the root logger
- StructuredFormatter emits one JSON object per record, carrying extra fields
"""

import json
import logging

import pytest

from margin_ledger import StructuredFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_returns_package_logger(self, restore_root_logger):
        logger = setup_logging("DEBUG")
        assert logger.name == "margin_ledger"
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging("chatty")
        assert restore_root_logger.level == logging.INFO

    def test_log_file(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "ledger.log"
        logger = setup_logging("INFO", structured=True, log_file=str(log_file))
        logger.info("Deposit asset=%d amount=%d", 1, 100)
        for handler in restore_root_logger.handlers:
            handler.flush()
        record = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert record["message"] == "Deposit asset=1 amount=100"
        assert record["level"] == "INFO"


class TestStructuredFormatter:

    def test_extra_fields(self):
        record = logging.makeLogRecord({
            "name": "margin_ledger.engine",
            "levelno": logging.WARNING,
            "levelname": "WARNING",
            "msg": "Liquidated account %s",
            "args": ("acct",),
            "account": "acct",
        })
        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "Liquidated account acct"
        assert data["logger"] == "margin_ledger.engine"
        assert data["account"] == "acct"
        assert "msg" not in data
