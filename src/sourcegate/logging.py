"""JSONL logging for the MCP servers.

One record per line in ``<log dir>/sourcegate.log``, rotated at 5 MB with
three backups. Tool calls carry ``adapter``, ``tool``, ``args`` and
``duration_ms`` alongside the usual timestamp, level and message.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "sourcegate"
_LOG_FILENAME = "sourcegate.log"
_ROTATE_AT = 5 * 1024 * 1024
_KEEP = 3

# LogRecord attribute -> JSON key, for values passed via ``extra=``.
_EXTRA_FIELDS = (
    ("adapter", "adapter"),
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
)

_lock = threading.Lock()


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        line.update({key: getattr(record, attr) for attr, key in _EXTRA_FIELDS if hasattr(record, attr)})
        if record.exc_info is not None and record.exc_info[1] is not None:
            line["exception"] = str(record.exc_info[1])
        return json.dumps(line, default=str)


def _file_handlers(logger: logging.Logger) -> list[RotatingFileHandler]:
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def setup_logging(log_dir: Path | None) -> logging.Logger:
    """Attach the JSONL file handler for *log_dir* to the ``sourcegate`` logger.

    ``None`` leaves the logger alone, so records only propagate to whatever
    the host application configured. Calling again with the same directory
    is a no-op; a different directory replaces the previous file handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if log_dir is None:
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = os.path.abspath(log_dir / _LOG_FILENAME)

    with _lock:
        current = _file_handlers(logger)
        if any(h.baseFilename == log_file for h in current):
            return logger
        for stale in current:
            logger.removeHandler(stale)
            stale.close()

        file_handler = RotatingFileHandler(log_file, maxBytes=_ROTATE_AT, backupCount=_KEEP)
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)
        logger.setLevel(logging.INFO)
    return logger
