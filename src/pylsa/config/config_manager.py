# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import json
import os
import shutil
from typing import Any, TypeVar

T = TypeVar("T")


class ConfigManager:
    """
    Manages decoder and logging configuration stored in JSON format.

    Loads configuration one level above this file:
    Example: src/pylsa/settings/system.json
    """

    def __init__(self, config_path: str | None = None) -> None:

        CONFIG_NAME = "system.json"
        CONFIG_DIR = "settings"
        CONFIG_PATH = os.path.join(CONFIG_DIR, CONFIG_NAME)

        if config_path:
            self._config_path = config_path
        else:
            current_dir = os.path.dirname(os.path.abspath(__file__))
            root_dir = os.path.abspath(os.path.join(current_dir, ".."))
            self._config_path = os.path.join(root_dir, CONFIG_PATH)

        self._config_data: dict[str, Any] = {}
        self._load()

    def get_config_path(self) -> str:
        """Returns the path to the configuration file."""
        return self._config_path

    def _load(self) -> None:
        """Loads the configuration JSON from disk."""
        actual_path = os.path.realpath(self._config_path)

        if not os.path.exists(actual_path):
            self._seed_from_template(actual_path)

        if not os.path.exists(actual_path):
            raise FileNotFoundError(f"Config file not found: {self._config_path}")
        with open(actual_path) as f:
            self._config_data = json.load(f)

    @staticmethod
    def _seed_from_template(actual_path: str) -> None:
        """Copies ``<name>.template`` or ``system.json.template`` into place when present."""
        for template in (f"{actual_path}.template",
                         os.path.join(os.path.dirname(actual_path), "system.json.template")):
            if os.path.exists(template):
                os.makedirs(os.path.dirname(actual_path), exist_ok=True)
                shutil.copy(template, actual_path)
                return

    def get(self, *keys: str, fallback: T | None = None) -> T | None:
        """
        Retrieves a deeply nested value from the config.

        Args:
            *keys (str): Sequence of keys to traverse the nested dictionary.
            fallback (Optional[Any]): A value to return if any key is not found.

        Returns:
            Any: The value from the configuration or the fallback.

        Example:
            config.get("AutoBaud", "noise_floor_ticks")
        """
        data = self._config_data
        for key in keys:
            if not isinstance(data, dict) or key not in data:
                return fallback
            data = data[key]
        return data

    def reload(self) -> None:
        """Reloads the configuration from disk."""
        self._load()

