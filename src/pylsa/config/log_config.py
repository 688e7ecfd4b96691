# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pylsa.config.system_config_settings import SystemConfigSettings
from pylsa.lib.types import FileNameStr, PathLike


class LoggerConfigurator:
    """
    Configure application logging to a file (and optionally console),
    with optional rotation and a standardized session banner.
    """

    def __init__(self,
                 log_dir: PathLike,
                 log_filename: FileNameStr,
                 level: str = 'INFO', to_console: bool = False, rotate: bool = False
    ) -> None:
        """
        Initialize the LoggerConfigurator.

        Args:
            log_dir (str): Directory path where log files will be stored. Created if missing.
            log_filename (str): Name of the log file (e.g. 'pylsa.log').
            level (str): Logging level name ('DEBUG', 'INFO', etc.).
            to_console (bool): If True, also output logs to stderr.
            rotate (bool): If True, use RotatingFileHandler (10MB max, 5 backups).
        """
        self.log_dir = Path(log_dir)
        self.log_filename = log_filename
        self.level = getattr(logging, level.upper(), logging.INFO)
        self.to_console = to_console
        self.rotate = rotate
        self.handlers: list[logging.Handler] = []

        self.__setup()

    @classmethod
    def from_settings(cls) -> LoggerConfigurator:
        """Build a configurator from the values in settings/system.json."""
        return cls(log_dir      =   SystemConfigSettings.log_dir(),
                   log_filename =   FileNameStr(SystemConfigSettings.log_filename()),
                   level        =   SystemConfigSettings.log_level(),
                   to_console   =   SystemConfigSettings.log_to_console(),
                   rotate       =   SystemConfigSettings.log_rotate())

    def __setup(self) -> None:
        """
        Internal method to configure the root logger:
        """
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / self.log_filename
        handler: logging.Handler
        if self.rotate:
            # Rotate after ~10MB, keep up to 5 old log files
            handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5
            )
        else:
            handler = logging.FileHandler(log_file)

        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(fmt)

        root = logging.getLogger()
        root.setLevel(self.level)
        root.addHandler(handler)
        self.handlers.append(handler)

        if self.to_console:
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(fmt)
            root.addHandler(console)
            self.handlers.append(console)

        # Startup banner to mark the beginning of a new decoding session
        root.info("==== PyLSA Decoding Session Starting ====")

    def close(self) -> None:
        """Detach and close the handlers installed by this configurator."""
        root = logging.getLogger()
        for handler in self.handlers:
            root.removeHandler(handler)
            handler.close()
        self.handlers.clear()
