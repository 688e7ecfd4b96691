# tests/test_config_manager.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pylsa.config.config_manager import ConfigManager


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """
    Temporary system.json with a decoder section and a logging section.
    """
    cfg_path = tmp_path / "system.json"
    data = {
        "AutoBaud": {
            "noise_floor_ticks": 3,
            "snap_tolerance_pct": 2.5,
        },
        "logging": {
            "log_level": "DEBUG",
            "rotate": False,
        },
    }
    cfg_path.write_text(json.dumps(data), encoding="utf-8")
    return cfg_path


def test_nested_lookup_reads_explicit_path(config_file: Path) -> None:
    mgr = ConfigManager(config_path=str(config_file))

    assert mgr.get("AutoBaud", "noise_floor_ticks") == 3
    assert mgr.get("AutoBaud", "snap_tolerance_pct") == pytest.approx(2.5)
    assert mgr.get("logging", "rotate") is False
    assert mgr.get_config_path() == str(config_file)


def test_missing_keys_yield_fallback_or_none(config_file: Path) -> None:
    mgr = ConfigManager(config_path=str(config_file))

    assert mgr.get("Manchester", "symbol_size", fallback=8) == 8
    assert mgr.get("AutoBaud", "min_edges") is None
    # Traversing through a scalar is a miss, not an error
    assert mgr.get("AutoBaud", "noise_floor_ticks", "deeper", fallback="x") == "x"


def test_reload_picks_up_edits(tmp_path: Path) -> None:
    cfg_path = tmp_path / "system.json"
    cfg_path.write_text(json.dumps({"Runner": {"yield_interval_samples": 1024}}), encoding="utf-8")

    mgr = ConfigManager(config_path=str(cfg_path))
    assert mgr.get("Runner", "yield_interval_samples") == 1024

    cfg_path.write_text(json.dumps({"Runner": {"yield_interval_samples": 2048}}), encoding="utf-8")
    mgr.reload()
    assert mgr.get("Runner", "yield_interval_samples") == 2048


def test_missing_file_is_seeded_from_template(tmp_path: Path) -> None:
    target = tmp_path / "system.json"
    (tmp_path / "system.json.template").write_text(json.dumps({"seeded": True}), encoding="utf-8")

    mgr = ConfigManager(config_path=str(target))

    assert target.exists()
    assert mgr.get("seeded") is True


def test_missing_file_without_template_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ConfigManager(config_path=str(tmp_path / "absent.json"))


def test_default_path_points_at_packaged_settings() -> None:
    mgr = ConfigManager()
    path = Path(mgr.get_config_path())

    assert path.name == "system.json"
    assert path.parent.name == "settings"
    assert mgr.get("AutoBaud", "min_edges") is not None
