# src/secbrain/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "secbrain.log"

# Console minimum level per logger prefix; the longest matching prefix wins.
# The gateway logs every failed remote call, which offline means every call:
# the console already shows connection changes, so only its errors go there.
CONSOLE_LEVELS: dict[str, int] = {
    "secbrain": logging.NOTSET,
    "secbrain.storage.gateway": logging.ERROR,
    "secbrain.storage.sync": logging.WARNING,
    "py.warnings": logging.ERROR,
}
_THIRD_PARTY_CONSOLE_LEVEL = logging.ERROR


def console_threshold(name: str) -> int:
    best = ""
    for prefix in CONSOLE_LEVELS:
        if (name == prefix or name.startswith(prefix + ".")) and len(prefix) > len(best):
            best = prefix
    return CONSOLE_LEVELS[best] if best else _THIRD_PARTY_CONSOLE_LEVEL


class ConsoleLevelFilter(logging.Filter):
    """Drops records below the console threshold of their logger (see CONSOLE_LEVELS)."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= console_threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/secbrain",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backups: int = 3,
) -> Path:
    """
    Short console lines for the REPL, full detail in a rotating file under log_dir.

    Replaces any handlers already on the root logger. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter("%(levelname)-7s %(message)s"))
    console.addFilter(ConsoleLevelFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # One line per HTTP request otherwise.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_file
