"""
Logging Configuration — One stderr handler for the CLI and the API server.

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)

## Usage

    from deployer.logging_config import setup_logging

    setup_logging()  # Call once at startup

Deployment code attaches its context with ``extra``; the formatters pick
up the fields listed in CONTEXT_FIELDS:

    logger.info("[git] Fetching origin", extra={"target_id": "editorial-dev", "operation": "fetch"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List

CONTEXT_FIELDS = ("target_id", "deployment_id", "processor", "operation")

# Third-party loggers that are chatty at INFO (HTTP processor, monitoring server)
QUIET_LOGGERS = ("httpx", "werkzeug")


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line:
    {"ts": "...", "level": "...", "logger": "...", "message": "...", "target_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    12:34:56 INFO    [sync           ] (editorial-dev/git-pull) Message

    Levels are coloured only when the stream is a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = False):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:7}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        module = record.name.split(".")[-1][:15]

        scope: List[str] = [
            str(value) for value in (getattr(record, "target_id", None), getattr(record, "processor", None)) if value
        ]
        msg = record.getMessage()
        if scope:
            msg = f"({'/'.join(scope)}) {msg}"

        line = f"{time_str} {level} [{module:15}] {msg}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure the root logger. Replaces any handlers installed earlier.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Defaults to LOG_LEVEL or INFO.
        format_type: json or text. Defaults to LOG_FORMAT or text.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()
    numeric_level = getattr(logging, log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(HumanFormatter(color=sys.stderr.isatty()))
    handler.setLevel(numeric_level)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured: level={log_level}, format={log_format}")
