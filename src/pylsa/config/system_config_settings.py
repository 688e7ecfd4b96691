# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging

from pylsa.config.config_manager import ConfigManager
from pylsa.lib.constants import DEFAULT_YIELD_INTERVAL


class SystemConfigSettings:
    """Provides dynamically reloaded decoder configuration via class properties."""
    _cfg        = ConfigManager()
    _logger     = logging.getLogger("SystemConfigSettings")

    _DEFAULT_LOG_LEVEL: str                 = "INFO"
    _DEFAULT_LOG_DIR: str                   = "logs"
    _DEFAULT_LOG_FILENAME: str              = "pylsa.log"
    _DEFAULT_YIELD_INTERVAL: int            = DEFAULT_YIELD_INTERVAL
    _DEFAULT_NOISE_FLOOR_TICKS: int         = 2
    _DEFAULT_MIN_EDGES: int                 = 4
    _DEFAULT_SNAP_TOLERANCE_PCT: float      = 2.5
    _DEFAULT_MULTIPLE_TOLERANCE_PCT: float  = 12.5
    _DEFAULT_TRUSTWORTHY_BIT_LENGTH: int    = 15
    _DEFAULT_CSV_SAMPLE_RATE: int           = 0
    _DEFAULT_MANCHESTER_SYMBOL_SIZE: int    = 8

    @classmethod
    def _config_path(cls, *path: str) -> str:
        """Return dotted path for logging."""
        return ".".join(path)

    @classmethod
    def _get_str(cls, default: str, *path: str) -> str:
        value = cls._cfg.get(*path)
        if value is None:
            cls._logger.error(
                "Missing configuration value for '%s'; using default '%s'",
                cls._config_path(*path),
                default,
            )
            return default
        if not isinstance(value, str):
            coerced = str(value)
            cls._logger.error(
                "Non-string configuration value for '%s': %r; using coerced '%s'",
                cls._config_path(*path),
                value,
                coerced,
            )
            return coerced
        if value == "":
            cls._logger.error(
                "Empty configuration value for '%s'; using default '%s'",
                cls._config_path(*path),
                default,
            )
            return default
        return value

    @classmethod
    def _get_int(cls, default: int, *path: str) -> int:
        value = cls._cfg.get(*path)
        if value is None:
            cls._logger.error(
                "Missing configuration value for '%s'; using default %d",
                cls._config_path(*path),
                default,
            )
            return default
        if isinstance(value, bool):
            cls._logger.error(
                "Invalid integer configuration value for '%s': %r; using default %d",
                cls._config_path(*path),
                value,
                default,
            )
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            cls._logger.error(
                "Invalid integer configuration value for '%s': %r; using default %d",
                cls._config_path(*path),
                value,
                default,
            )
            return default

    @classmethod
    def _get_float(cls, default: float, *path: str) -> float:
        value = cls._cfg.get(*path)
        if value is None:
            cls._logger.error(
                "Missing configuration value for '%s'; using default %s",
                cls._config_path(*path),
                default,
            )
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            cls._logger.error(
                "Invalid float configuration value for '%s': %r; using default %s",
                cls._config_path(*path),
                value,
                default,
            )
            return default

    @classmethod
    def _get_bool(cls, default: bool, *path: str) -> bool:
        value = cls._cfg.get(*path)
        if isinstance(value, bool):
            return value
        if value is None:
            cls._logger.error(
                "Missing configuration value for '%s'; using default %s",
                cls._config_path(*path),
                default,
            )
            return default

        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False

        cls._logger.error(
            "Invalid boolean configuration value for '%s': %r; using default %s",
            cls._config_path(*path),
            value,
            default,
        )
        return default

    @classmethod
    def get_config_path(cls) -> str:
        return cls._cfg.get_config_path()

    @classmethod
    def reload(cls) -> None:
        cls._cfg.reload()

    # Logging
    @classmethod
    def log_level(cls) -> str:
        return cls._get_str(cls._DEFAULT_LOG_LEVEL, "logging", "log_level")

    @classmethod
    def log_dir(cls) -> str:
        return cls._get_str(cls._DEFAULT_LOG_DIR, "logging", "log_dir")

    @classmethod
    def log_filename(cls) -> str:
        return cls._get_str(cls._DEFAULT_LOG_FILENAME, "logging", "log_filename")

    @classmethod
    def log_to_console(cls) -> bool:
        return cls._get_bool(False, "logging", "to_console")

    @classmethod
    def log_rotate(cls) -> bool:
        return cls._get_bool(True, "logging", "rotate")

    # Runner
    @classmethod
    def yield_interval(cls) -> int:
        value = cls._get_int(cls._DEFAULT_YIELD_INTERVAL, "Runner", "yield_interval_samples")
        if value <= 0:
            cls._logger.error(
                "Non-positive yield interval %d; using default %d", value, cls._DEFAULT_YIELD_INTERVAL)
            return cls._DEFAULT_YIELD_INTERVAL
        return value

    # Auto-baud estimator
    @classmethod
    def auto_baud_noise_floor(cls) -> int:
        return cls._get_int(cls._DEFAULT_NOISE_FLOOR_TICKS, "AutoBaud", "noise_floor_ticks")

    @classmethod
    def auto_baud_min_edges(cls) -> int:
        return cls._get_int(cls._DEFAULT_MIN_EDGES, "AutoBaud", "min_edges")

    @classmethod
    def auto_baud_snap_tolerance(cls) -> float:
        """Relative tolerance (fraction) for snapping to a canonical baud rate."""
        return cls._get_float(cls._DEFAULT_SNAP_TOLERANCE_PCT, "AutoBaud", "snap_tolerance_pct") / 100.0

    @classmethod
    def auto_baud_multiple_tolerance(cls) -> float:
        """Relative tolerance (fraction of one bit) for interval multiples."""
        return cls._get_float(cls._DEFAULT_MULTIPLE_TOLERANCE_PCT, "AutoBaud", "multiple_tolerance_pct") / 100.0

    @classmethod
    def auto_baud_trustworthy_bit_length(cls) -> int:
        return cls._get_int(cls._DEFAULT_TRUSTWORTHY_BIT_LENGTH, "AutoBaud", "trustworthy_bit_length")

    # CSV import
    @classmethod
    def csv_default_sample_rate(cls) -> int:
        return cls._get_int(cls._DEFAULT_CSV_SAMPLE_RATE, "Csv", "default_sample_rate")

    # Manchester
    @classmethod
    def manchester_symbol_size(cls) -> int:
        return cls._get_int(cls._DEFAULT_MANCHESTER_SYMBOL_SIZE, "Manchester", "symbol_size")
