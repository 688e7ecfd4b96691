#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Any

from pylsa.capture.capture import Capture
from pylsa.config.log_config import LoggerConfigurator
from pylsa.decoder.asm45.analyser import Asm45AnalyserTask
from pylsa.decoder.asm45.config import Asm45Config
from pylsa.decoder.base import DecoderTask, ToolContext
from pylsa.decoder.manchester.config import ManchesterConfig
from pylsa.decoder.manchester.decoder import ManchesterDecoderTask
from pylsa.decoder.uart.analyser import UartAnalyserTask
from pylsa.decoder.uart.config import UartConfig
from pylsa.lib.csv.importer import CsvCaptureImporter, ThresholdMode
from pylsa.lib.errors import ToolError
from pylsa.tool.runner import ToolRunner
from pylsa.version import __version__ as PYLSA_VERSION

DECODERS = ("uart", "manchester", "asm45")


def parse_option(text: str) -> tuple[str, Any]:
    """Split ``key=value``; the value is read as JSON when possible, else kept as a string."""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key.strip(), value


def build_task(decoder: str, capture: Capture, options: dict[str, Any]) -> DecoderTask[Any]:
    context = ToolContext.from_capture(capture)
    if decoder == "uart":
        return UartAnalyserTask(context, UartConfig.from_mapping(options))
    if decoder == "manchester":
        return ManchesterDecoderTask(context, ManchesterConfig.from_mapping(options))
    return Asm45AnalyserTask(context, Asm45Config.from_mapping(options))


def main(argv: Sequence[str] | None = None) -> int:

    parser = argparse.ArgumentParser(
        prog="pylsa",
        description="Decode a CSV logic-analyzer capture and print the annotations as JSON lines."
    )

    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"{PYLSA_VERSION}",
        help="Show PyLSA version and exit.",
    )

    parser.add_argument("decoder", choices=DECODERS, help="Decoder to run")
    parser.add_argument("csvfile", help="CSV capture, one row per sample, one column per channel")
    parser.add_argument("--sample-rate", type=int, default=None, help="Sample rate in Hz (default: from settings)")
    parser.add_argument(
        "--threshold",
        choices=[m.value for m in ThresholdMode],
        default=ThresholdMode.MEAN.value,
        help="Per-column 0/1 threshold (default: mean).",
    )
    parser.add_argument(
        "-o",
        "--option",
        dest="options",
        action="append",
        type=parse_option,
        default=[],
        help="Decoder option as key=value, e.g. rxdIndex=0. Can be passed multiple times.",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Cancel the run after this many seconds")
    parser.add_argument("--log", action="store_true", help="Write a log file as configured in settings/system.json")

    args = parser.parse_args(argv)

    logger = LoggerConfigurator.from_settings() if args.log else None
    try:
        capture = CsvCaptureImporter(sample_rate=args.sample_rate,
                                     threshold=ThresholdMode(args.threshold)).read_file(args.csvfile)
        task = build_task(args.decoder, capture, dict(args.options))
        result = ToolRunner().run(task, timeout=args.timeout)
    except ToolError as err:
        print(f"[ERROR] {err.kind.value}: {err.message}", file=sys.stderr)
        return 2
    except OSError as err:
        print(f"[ERROR] {err}", file=sys.stderr)
        return 2
    finally:
        if logger is not None:
            logger.close()

    if result.error is not None:
        print(f"[ERROR] {result.error.kind.value}: {result.error.message}", file=sys.stderr)
        return 1

    for record in capture.annotations.records():
        print(json.dumps(record))
    return 0


if __name__ == "__main__":
    sys.exit(main())
