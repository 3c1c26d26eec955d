# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

from secbrain.logging_setup import ConsoleLevelFilter, console_threshold, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_thresholds_use_the_longest_prefix() -> None:
    assert console_threshold("secbrain.projects.service") == logging.NOTSET
    assert console_threshold("secbrain.storage.gateway") == logging.ERROR
    assert console_threshold("secbrain.storage.sync") == logging.WARNING
    assert console_threshold("secbrainish") == logging.ERROR
    assert console_threshold("httpx") == logging.ERROR


def test_console_filter_keeps_app_logs_and_drops_offline_noise() -> None:
    f = ConsoleLevelFilter()
    assert f.filter(_record("secbrain.cli.commands", logging.INFO))
    assert not f.filter(_record("secbrain.storage.gateway", logging.WARNING))
    assert f.filter(_record("secbrain.storage.gateway", logging.ERROR))
    assert not f.filter(_record("secbrain.storage.sync", logging.INFO))


def test_file_log_gets_everything(tmp_path: Path) -> None:
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs")
        logging.getLogger("secbrain.storage.gateway").debug("remote get failed")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in before:
            root.addHandler(handler)
        root.setLevel(level)
        logging.captureWarnings(False)

    assert log_file.name == "secbrain.log"
    assert "secbrain.storage.gateway: remote get failed" in log_file.read_text(encoding="utf-8")
