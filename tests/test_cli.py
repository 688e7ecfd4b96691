# tests/test_cli.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

from pylsa.cli import main, parse_option
from pylsa.version import __version__


def _write_uart_csv(path: Path, value: int) -> Path:
    """One column, one row per tick: idle, an 8N1 frame at ten rows per bit, idle."""
    rows = ["1"] * 100
    for level in [0, *[(value >> i) & 1 for i in range(8)], 1]:
        rows.extend([str(level)] * 10)
    rows.extend(["1"] * 50)
    path.write_text("rxd\n" + "\n".join(rows) + "\n", encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "text, expected",
    [
        ("rxdIndex=0", ("rxdIndex", 0)),
        ("parity=even", ("parity", "even")),
        ("stopBits=1.5", ("stopBits", 1.5)),
        ("reportInst=false", ("reportInst", False)),
        ("baudRate=AUTO", ("baudRate", "AUTO")),
    ],
)
def test_parse_option(text: str, expected: tuple[str, object]) -> None:
    assert parse_option(text) == expected


@pytest.mark.parametrize("text", ["rxdIndex", "=3"])
def test_parse_option_rejects_malformed(text: str) -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        parse_option(text)


def test_uart_decode_prints_json_records(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    csv_file = _write_uart_csv(tmp_path / "uart.csv", 0x55)

    rc = main(["uart", str(csv_file), "--sample-rate", "96000", "-o", "rxdIndex=0", "-o", "baudRate=9600"])

    assert rc == 0
    records = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert [r["kindTag"] for r in records] == ["label", "metadata", "symbol"]
    assert records[0]["payload"] == "RxD"
    symbol = records[2]
    assert (symbol["channel"], symbol["startTs"], symbol["endTs"], symbol["payload"]) == (0, 100, 200, 0x55)


def test_missing_file_exit_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["uart", str(tmp_path / "absent.csv"), "-o", "rxdIndex=0"])

    assert rc == 2
    assert capsys.readouterr().err.startswith("[ERROR]")


def test_invalid_option_exit_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    csv_file = _write_uart_csv(tmp_path / "uart.csv", 0x55)

    rc = main(["uart", str(csv_file), "--sample-rate", "96000", "-o", "rxdIndex=0", "-o", "bitCount=4"])

    assert rc == 2
    assert "INVALID_CONFIG" in capsys.readouterr().err


def test_failed_decode_exit_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    csv_file = tmp_path / "quiet.csv"
    csv_file.write_text("\n".join(["1"] * 10 + ["0"] * 10 + ["1"] * 10) + "\n", encoding="utf-8")

    rc = main(["uart", str(csv_file), "--sample-rate", "1000000", "-o", "rxdIndex=0"])

    assert rc == 1
    assert "NO_SIGNAL" in capsys.readouterr().err


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as info:
        main(["--version"])

    assert info.value.code == 0
    assert __version__ in capsys.readouterr().out
