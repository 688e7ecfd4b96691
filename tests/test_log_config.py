# tests/test_log_config.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pylsa.config.log_config import LoggerConfigurator
from pylsa.lib.types import FileNameStr


def test_file_logging_writes_banner_and_messages(tmp_path: Path) -> None:
    log_dir = tmp_path / "logs"
    cfg = LoggerConfigurator(log_dir, FileNameStr("pylsa.log"), level="debug")
    try:
        logging.getLogger("UartAnalyserTask").debug("decoding RxD")
    finally:
        cfg.close()

    text = (log_dir / "pylsa.log").read_text(encoding="utf-8")
    assert "==== PyLSA Decoding Session Starting ====" in text
    assert "[DEBUG] UartAnalyserTask: decoding RxD" in text


def test_rotate_and_console_handlers(tmp_path: Path) -> None:
    cfg = LoggerConfigurator(tmp_path, FileNameStr("rot.log"), rotate=True, to_console=True)
    try:
        assert isinstance(cfg.handlers[0], RotatingFileHandler)
        assert len(cfg.handlers) == 2
        assert all(h in logging.getLogger().handlers for h in cfg.handlers)
    finally:
        cfg.close()

    assert cfg.handlers == []
