# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging

import numpy as np
from pydantic import BaseModel, Field

from pylsa.capture.capture import Capture
from pylsa.config.system_config_settings import SystemConfigSettings
from pylsa.decoder.base import ProgressMonitor
from pylsa.lib.constants import CANONICAL_BAUD_RATES
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.types import BaudRate, BitLength, NDArrayI64


class BaudRateEstimate(BaseModel):
    bit_length: BitLength       = Field(default=BitLength(0.0), description="Estimated bit length in sample ticks; 0 on failure")
    baud_rate: BaudRate         = Field(default=BaudRate(0), description="Nominal rate, snapped to the canonical table when close enough")
    baud_rate_exact: float      = Field(default=0.0, description="sampleRate / bitLength")
    trustworthy: bool           = Field(default=False, description="True when the bit length spans enough ticks to resolve jitter")
    edge_count: int             = Field(default=0, description="Edges retained after filtering")

    @property
    def failed(self) -> bool:
        return self.baud_rate <= 0


class AutoBaudEstimator:
    """
    Derives the bit length of a serial line from its inter-edge intervals.

    The candidate bit length is the smallest interval length that recurs often
    enough and of which every longer retained interval is (within tolerance)
    an integer multiple. The estimate is then refined over all intervals that
    fit, converted into a baud rate and snapped to the nearest canonical rate
    when within the snap tolerance.
    """

    def __init__(self,
                 noise_floor: int | None = None,
                 min_edges: int | None = None,
                 multiple_tolerance: float | None = None,
                 snap_tolerance: float | None = None,
                 trustworthy_bit_length: int | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.noise_floor = SystemConfigSettings.auto_baud_noise_floor() if noise_floor is None else noise_floor
        self.min_edges = SystemConfigSettings.auto_baud_min_edges() if min_edges is None else min_edges
        self.multiple_tolerance = (SystemConfigSettings.auto_baud_multiple_tolerance()
                                   if multiple_tolerance is None else multiple_tolerance)
        self.snap_tolerance = (SystemConfigSettings.auto_baud_snap_tolerance()
                               if snap_tolerance is None else snap_tolerance)
        self.trustworthy_bit_length = (SystemConfigSettings.auto_baud_trustworthy_bit_length()
                                       if trustworthy_bit_length is None else trustworthy_bit_length)

    def estimate(self,
                 capture: Capture,
                 mask: int,
                 start_index: int = 0,
                 end_index: int | None = None,
                 upper_bound: int | None = None,
                 monitor: ProgressMonitor | None = None) -> BaudRateEstimate:
        """
        Estimate the baud rate of the line selected by ``mask`` (exactly one bit).

        Args:
            capture: Capture holding the line.
            mask: Single-bit channel mask.
            start_index: First sample to consider.
            end_index: Last sample to consider (inclusive); defaults to the last sample.
            upper_bound: Longest interval retained, in ticks; defaults to half the span.
            monitor: Polled for cancellation while candidates are searched.

        Returns:
            BaudRateEstimate; ``baud_rate == 0`` and ``trustworthy == False`` on failure.
        """
        if mask <= 0 or mask & (mask - 1):
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Auto-baud needs a single-bit channel mask, got {mask:#x}")
        if not capture.has_timing_data():
            raise ToolError(ErrorKind.INVALID_CONFIG, "Auto-baud needs a capture with a sample rate")
        if capture.size == 0:
            return BaudRateEstimate()

        last = capture.size - 1 if end_index is None else min(end_index, capture.size - 1)
        ts = capture.timestamps[start_index:last + 1]
        bits = (capture.values[start_index:last + 1] & mask) != 0
        edges = ts[np.flatnonzero(np.diff(bits.astype(np.int8))) + 1]

        span = (capture.absolute_length if end_index is None else int(ts[-1])) - int(ts[0])
        limit = upper_bound if upper_bound is not None else max(span // 2, self.noise_floor)

        intervals = np.diff(edges)
        intervals = intervals[(intervals >= self.noise_floor) & (intervals <= limit)]

        if intervals.size + 1 < self.min_edges:
            self.logger.info(f"Auto-baud failed on mask {mask:#x}: {edges.size} edges, {intervals.size} usable intervals")
            return BaudRateEstimate(edge_count=int(edges.size))

        candidate = self._candidate(intervals, monitor)
        if candidate is None:
            self.logger.info(f"Auto-baud failed on mask {mask:#x}: no recurring interval")
            return BaudRateEstimate(edge_count=int(intervals.size + 1))

        bit_length = self._refine(intervals, candidate)
        exact = capture.sample_rate / bit_length
        baud = self._snap(exact)

        estimate = BaudRateEstimate(
            bit_length      =   BitLength(bit_length),
            baud_rate       =   BaudRate(baud),
            baud_rate_exact =   float(exact),
            trustworthy     =   bit_length > self.trustworthy_bit_length,
            edge_count      =   int(intervals.size + 1),
        )
        self.logger.debug(f"Auto-baud on mask {mask:#x}: {estimate}")
        return estimate

    def _fits(self, intervals: NDArrayI64, length: float) -> np.ndarray:
        multiples = np.maximum(np.rint(intervals / length), 1.0)
        return np.abs(intervals - multiples * length) <= self.multiple_tolerance * length

    def _candidate(self, intervals: NDArrayI64, monitor: ProgressMonitor | None = None) -> float | None:
        ordered = np.sort(intervals)
        total = ordered.size
        min_count = max(3, int(np.ceil(0.05 * total)))
        tol = self.multiple_tolerance

        lengths = np.unique(ordered)
        counts = (np.searchsorted(ordered, lengths * (1 + tol), side="right")
                  - np.searchsorted(ordered, lengths * (1 - tol), side="left"))
        recurring = lengths[counts >= min_count]
        recurring_counts = counts[counts >= min_count]

        best: tuple[int, int, float] | None = None
        for length, count in zip(recurring.tolist(), recurring_counts.tolist()):
            if monitor is not None:
                monitor.check_cancelled()
            fit = self._fits(ordered, float(length))
            fitting = int(np.count_nonzero(fit))
            # A bit length must explain most intervals; noise never does
            if fitting * 2 <= total:
                continue
            split = int(np.searchsorted(ordered, length, side="right"))
            if bool(np.all(fit[split:])):
                return float(length)
            if best is None or (fitting, count) > best[:2]:
                best = (fitting, count, float(length))

        return best[2] if best is not None else None

    def _refine(self, intervals: NDArrayI64, length: float) -> float:
        for _ in range(2):
            fit = self._fits(intervals, length)
            if not np.any(fit):
                break
            chosen = intervals[fit]
            multiples = np.maximum(np.rint(chosen / length), 1.0)
            length = float(chosen.sum() / multiples.sum())
        return length

    def _snap(self, exact: float) -> int:
        nearest = min(CANONICAL_BAUD_RATES, key=lambda rate: abs(rate - exact))
        if abs(nearest - exact) <= self.snap_tolerance * nearest:
            return nearest
        return int(round(exact))
