"""
logging_config.py - Logging Setup

Modules log through logging.getLogger(__name__) and never configure
handlers themselves. Applications call setup_logging() once.

    INFO     one line per operation ("Deposit asset=2 amount=1000 account=a1")
    WARNING  policy rejections, liquidations, loss socialization
    ERROR    operations aborted by arithmetic or invariant failures
"""

from __future__ import annotations
import json
import logging
import sys
from typing import Any, Dict, Optional


_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; `extra=` fields are carried through."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value
        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    *,
    structured: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        structured: Emit JSON lines instead of plain text
        log_file: Also write to this file

    Returns:
        The package logger ("margin_ledger").
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return logging.getLogger("margin_ledger")
