"""
Logging setup for the QCC wallet.

Two console styles:
  - **human** – coloured single line: ``12:00:01.250 INFO    qcc_client | Broadcast accepted``
  - **json**  – one JSON object per line, for log shippers

Log files are always JSON.  Every handler masks standalone 64-hex-character
tokens (private keys, public keys) before anything is written.

Usage:
    from qcc_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="logs/wallet.log")
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

_KEY_TOKEN = re.compile(r"(?<![0-9a-fA-F])[0-9a-fA-F]{64}(?![0-9a-fA-F])")
REDACTED = "[redacted]"


def redact(text: str) -> str:
    return _KEY_TOKEN.sub(REDACTED, text)


class RedactSecretsFilter(logging.Filter):
    """Replace key-length hex tokens in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class _JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            # tracebacks can quote local variables
            entry["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(entry, default=str, ensure_ascii=False)


class _HumanFormatter(logging.Formatter):

    _LEVEL_COLOURS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    _RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created)
        ts = stamp.strftime("%H:%M:%S") + f".{stamp.microsecond // 1000:03d}"
        level = f"{record.levelname:<7}"
        if self.colour:
            level = f"{self._LEVEL_COLOURS.get(record.levelno, '')}{level}{self._RESET}"
        line = f"{ts} {level} {record.name} | {record.getMessage()}"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + redact(self.formatException(record.exc_info))
        return line


def _attach(root: logging.Logger, handler: logging.Handler,
            formatter: logging.Formatter) -> None:
    handler.setFormatter(formatter)
    handler.addFilter(RedactSecretsFilter())
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger for the wallet process.

    Parameters
    ----------
    level : str
        DEBUG, INFO, WARNING, ERROR or CRITICAL.
    fmt : str
        ``"human"`` or ``"json"`` for the console handler.
    log_file : str, optional
        Extra JSON log file; parent directories are created.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    if fmt == "json":
        console_fmt: logging.Formatter = _JSONFormatter()
    else:
        console_fmt = _HumanFormatter(colour=sys.stderr.isatty())
    _attach(root, logging.StreamHandler(sys.stderr), console_fmt)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        _attach(root, logging.FileHandler(path, encoding="utf-8"), _JSONFormatter())
