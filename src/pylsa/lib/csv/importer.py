# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

import numpy as np

from pylsa.capture.builder import CaptureBuilder
from pylsa.capture.capture import Capture
from pylsa.config.system_config_settings import SystemConfigSettings
from pylsa.lib.constants import MAX_CHANNELS
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.types import PathLike, StringEnum


class ThresholdMode(StringEnum):
    """How a column's 0/1 decision threshold is derived from its raw values."""
    MEAN        = "mean"        # arithmetic mean of the column
    MIDRANGE    = "midrange"    # (max - min) / 2 + min


class CsvCaptureImporter:
    """
    Turns CSV text into a Capture.

    One row per sample tick, one decimal integer per channel column. Fields
    that are not integers are skipped; a row that is shorter than its
    predecessors repeats the previous raw value of each missing column.
    Columns that never held a number are removed and the remaining ones are
    packed, in order, into bits 0..n-1. The row count is the length of the
    shortest remaining column. A raw value becomes 1 when it is strictly
    greater than the column threshold.
    """

    def __init__(self,
                 sample_rate: int | None = None,
                 threshold: ThresholdMode = ThresholdMode.MEAN) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.sample_rate = SystemConfigSettings.csv_default_sample_rate() if sample_rate is None else sample_rate
        self.threshold = threshold

    def read_file(self, path: PathLike) -> Capture:
        file_path = Path(path)
        self.logger.info(f"Importing CSV capture from {file_path}")
        with file_path.open("r", newline="", encoding="utf-8") as fh:
            return self.read_text(fh.read())

    def read_text(self, text: str) -> Capture:
        columns = self._collect_columns(text)
        columns = [c for c in columns if c]
        if not columns:
            raise ToolError(ErrorKind.RANGE_EMPTY, "CSV input holds no numeric columns")
        if len(columns) > MAX_CHANNELS:
            raise ToolError(ErrorKind.INVALID_CONFIG,
                            f"CSV input has {len(columns)} numeric columns, at most {MAX_CHANNELS} are supported")

        rows = min(len(c) for c in columns)
        packed = np.zeros(rows, dtype=np.int64)
        for bit, column in enumerate(columns):
            raw = np.asarray(column[:rows], dtype=np.float64)
            level = raw > self._threshold(raw)
            packed |= level.astype(np.int64) << bit

        self.logger.debug(f"CSV import: {len(columns)} channels, {rows} rows")

        builder = (CaptureBuilder()
                   .set_sample_rate(self.sample_rate)
                   .set_channel_count(len(columns))
                   .set_enabled_channels((1 << len(columns)) - 1)
                   .set_absolute_length(max(rows - 1, 0)))
        builder.add_samples((i, int(v)) for i, v in enumerate(packed))
        return builder.build()

    def _threshold(self, raw: np.ndarray) -> float:
        if self.threshold is ThresholdMode.MIDRANGE:
            lo = float(raw.min())
            hi = float(raw.max())
            return (hi - lo) / 2.0 + lo
        return float(raw.mean())

    @staticmethod
    def _collect_columns(text: str) -> list[list[int]]:
        columns: list[list[int]] = []
        previous: list[int | None] = []

        for row in csv.reader(io.StringIO(text)):
            if not row or all(not field.strip() for field in row):
                continue

            for i, field in enumerate(row):
                if len(columns) <= i:
                    columns.append([])
                    previous.append(None)
                try:
                    value = int(field.strip())
                except ValueError:
                    continue
                columns[i].append(value)
                previous[i] = value

            # Columns missing from a short row inherit their previous raw value
            for i in range(len(row), len(columns)):
                if previous[i] is not None:
                    columns[i].append(previous[i])  # type: ignore[arg-type]

        return columns
