# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from typing import ClassVar

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from pylsa.annotation.model import ErrorAnnotation, MetadataAnnotation, SymbolAnnotation
from pylsa.capture.builder import CaptureBuilder
from pylsa.capture.capture import Capture
from pylsa.decoder.base import DecoderTask, ProgressMonitor, ToolContext
from pylsa.decoder.manchester.config import ManchesterConfig
from pylsa.decoder.uart.config import BitOrder
from pylsa.lib.constants import COLOR_WARNING, KEY_COLOR, KEY_TEXT, KEY_TYPE, TYPE_SYMBOL
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import EventTopic
from pylsa.lib.types import ChannelIndex, NDArrayI64, TimeStamp

# Intervals considered when learning the initial half-cycle
_LEARN_INTERVALS: int = 16
_MIN_HALF_CYCLE: int = 2


class ManchesterSymbol(BaseModel):
    start: TimeStamp    = Field(..., description="First tick of the symbol's first bit cell")
    end: TimeStamp      = Field(..., description="Last tick of the symbol's last bit cell")
    value: int          = Field(..., description="Decoded symbol")


class ManchesterDataSet(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    capture: Capture                = Field(..., description="Input capture with the synthesized clock channel")
    data_channel: int               = Field(..., description="Decoded data line")
    clock_channel: int              = Field(..., description="Channel carrying the synthesized clock")
    symbols: list[ManchesterSymbol] = Field(default_factory=list)
    half_cycle: float               = Field(..., description="Recovered half-cycle in sample ticks")
    clock_frequency: float          = Field(default=0.0, description="sampleRate / (2 * halfCycle), 0 for state captures")
    bit_count: int                  = Field(default=0, description="Bits decoded, virtual completion bits included")
    sync_errors: int                = Field(default=0, description="Intervals matching neither half nor full cycle")


class _Bit:
    __slots__ = ("mid", "value", "half")

    def __init__(self, mid: float, value: int, half: float) -> None:
        self.mid = mid
        self.value = value
        self.half = half


class ManchesterDecoderTask(DecoderTask[ManchesterDataSet]):
    """
    Self-clocking Manchester decoder over one data line.

    Consecutive edges are grouped into bursts of intervals that match the
    tracked half-cycle ``H`` (half-bit) or ``2H`` (full bit) within the current
    jitter window. The window starts at ``H/2`` and then contracts to one
    eighth of the last measured half-cycle. An interval longer
    than ``2H`` plus jitter is idle time and ends the burst; any other mismatch
    is reported as a FRAME error and also ends it.

    Within a burst the first full-bit interval fixes which edges are mid-bit
    edges; a mid-bit edge carries one data bit given by the level after it.
    """
    name: ClassVar[str] = "manchester"

    def __init__(self, context: ToolContext, config: ManchesterConfig, monitor: ProgressMonitor | None = None) -> None:
        super().__init__(context, monitor)
        self.config = config
        self._bits: list[_Bit] = []
        self._symbols: list[ManchesterSymbol] = []
        self._sync_errors = 0

    def _validate(self) -> None:
        count = self.capture.channel_count
        if self.config.data_index >= count:
            raise ToolError(ErrorKind.INVALID_CONFIG,
                            f"Data index {self.config.data_index} exceeds the capture's {count} channels")

    def decode(self) -> ManchesterDataSet:
        self._validate()
        cfg = self.config
        data_idx = cfg.data_index
        clock_idx = cfg.clock_index

        _, stamps, levels = self.scanner.transitions(data_idx, self.context.start_ts, self.context.end_ts)
        if stamps.size < 2:
            raise ToolError(ErrorKind.NO_SIGNAL, f"Fewer than two edges on channel {data_idx}")
        half = self._initial_half_cycle(stamps)
        if half is None:
            raise ToolError(ErrorKind.NO_SIGNAL, f"No usable edge interval on channel {data_idx}")

        self.prepare_channel(data_idx, "Data")
        self.prepare_channel(clock_idx, "Clock")
        self._check_clock_channel(clock_idx)

        half = self._scan(stamps, levels, half)

        capture = self._rebuild(clock_idx)
        self.monitor.finish()

        frequency = self.capture.sample_rate / (2.0 * half) if self.capture.has_timing_data() else 0.0
        self.logger.info(f"Manchester decode finished: {len(self._symbols)} symbols, clock {frequency:.1f} Hz")
        return ManchesterDataSet(
            capture         =   capture,
            data_channel    =   data_idx,
            clock_channel   =   clock_idx,
            symbols         =   list(self._symbols),
            half_cycle      =   half,
            clock_frequency =   frequency,
            bit_count       =   len(self._bits),
            sync_errors     =   self._sync_errors,
        )

    @staticmethod
    def _initial_half_cycle(stamps: NDArrayI64) -> float | None:
        intervals = np.diff(stamps[:_LEARN_INTERVALS + 1])
        intervals = intervals[intervals >= _MIN_HALF_CYCLE]
        return float(intervals.min()) if intervals.size else None

    def _check_clock_channel(self, clock_idx: int) -> None:
        if not self.capture.is_channel_enabled(clock_idx):
            return
        self.logger.warning(f"Channel {clock_idx} is in use and will be overwritten by the synthesized clock")
        self.context.bus.publish(EventTopic.CLOCK_CHANNEL_OVERWRITTEN, channel=clock_idx)
        self.annotations.add(MetadataAnnotation(
            channel =   ChannelIndex(clock_idx),
            text    =   f"Channel {clock_idx} overwritten by the synthesized Manchester clock",
            data    =   {KEY_COLOR: COLOR_WARNING, KEY_TYPE: "warning"},
        ))

    def _scan(self, stamps: NDArrayI64, levels: NDArrayI64, half: float) -> float:
        """Walk all edges, decoding burst by burst; returns the final half-cycle."""
        jitter = half / 2
        burst: list[int] = [0]
        full_at: int | None = None
        t_first = int(stamps[0])
        t_last = int(stamps[-1])

        for i in range(1, stamps.size):
            self.monitor.check_cancelled()
            if self.monitor.due(i):
                self.monitor.set_position(int(stamps[i]), t_first, t_last)

            d = float(stamps[i] - stamps[i - 1])
            if abs(d - half) <= jitter:
                half, jitter = d, d / 8
                burst.append(i)
            elif abs(d - 2 * half) <= jitter:
                if full_at is None:
                    full_at = len(burst) - 1
                half, jitter = d / 2, d / 16
                burst.append(i)
            else:
                self._flush(burst, full_at, stamps, levels, half)
                if d < 2 * half + jitter:
                    self._sync_errors += 1
                    self.annotations.add(ErrorAnnotation(
                        channel =   ChannelIndex(self.config.data_index),
                        start   =   TimeStamp(int(stamps[i - 1])),
                        end     =   TimeStamp(int(stamps[i])),
                        error   =   ErrorKind.FRAME,
                    ))
                    jitter = half / 2
                burst, full_at = [i], None

        self._flush(burst, full_at, stamps, levels, half)
        return half

    def _bit_value(self, level: int) -> int:
        return level ^ 1 if self.config.polarity.inverted else level

    def _flush(self, burst: list[int], full_at: int | None, stamps: NDArrayI64, levels: NDArrayI64, half: float) -> None:
        if len(burst) < 2:
            return

        # Edge full_at starts a full-bit interval, so it is a mid-bit edge
        mid = True if full_at is None else full_at % 2 == 0
        bits: list[_Bit] = []
        prev = burst[0]
        for k, idx in enumerate(burst):
            if k:
                d = float(stamps[idx] - stamps[prev])
                mid = True if d > 1.5 * half else not mid
            if mid:
                bits.append(_Bit(float(stamps[idx]), self._bit_value(int(levels[idx])), half))
            prev = idx

        size = self.config.symbol_size
        partial = len(bits) % size
        if partial:
            last_edge = float(stamps[burst[-1]])
            last_level = int(levels[burst[-1]])
            next_mid = bits[-1].mid + 2 * half if bits and bits[-1].mid == last_edge else last_edge + half
            for _ in range(size - partial):
                bits.append(_Bit(next_mid, self._bit_value(last_level), half))
                next_mid += 2 * half

        for n in range(0, len(bits), size):
            self._emit(bits[n:n + size])
        self._bits.extend(bits)

    def _emit(self, bits: list[_Bit]) -> None:
        value = 0
        for i, bit in enumerate(bits):
            if self.config.bit_order is BitOrder.MSB_FIRST:
                value = (value << 1) | bit.value
            else:
                value |= bit.value << i

        start = TimeStamp(max(0, round(bits[0].mid - bits[0].half)))
        end = TimeStamp(round(bits[-1].mid + bits[-1].half))
        self._symbols.append(ManchesterSymbol(start=start, end=end, value=value))
        self.annotations.add(SymbolAnnotation(
            channel     =   ChannelIndex(self.config.data_index),
            start       =   start,
            end         =   end,
            value       =   value,
            properties  =   {KEY_TYPE: TYPE_SYMBOL, KEY_TEXT: f"0x{value:0{(self.config.symbol_size + 3) // 4}X}"},
        ))

    def _rebuild(self, clock_idx: int) -> Capture:
        """Copy of the input with the clock channel replaced by the recovered bit clock."""
        source = self.capture
        clock: dict[int, int] = {}
        for bit in self._bits:
            clock[round(bit.mid - bit.half)] = 1
            clock[round(bit.mid)] = 0

        clock_ts = np.fromiter(clock.keys(), dtype=np.int64, count=len(clock))
        clock_lv = np.fromiter(clock.values(), dtype=np.int64, count=len(clock))
        order = np.argsort(clock_ts, kind="stable")
        clock_ts, clock_lv = clock_ts[order], clock_lv[order]

        stamps = np.union1d(source.timestamps, clock_ts)
        base = source.values[np.clip(np.searchsorted(source.timestamps, stamps, side="right") - 1, 0, None)]
        pos = np.searchsorted(clock_ts, stamps, side="right") - 1
        level = np.where(pos >= 0, clock_lv[np.clip(pos, 0, None)], 0)
        mask = 1 << clock_idx
        values = (base & ~mask) | (level << clock_idx)

        builder = (CaptureBuilder()
                   .apply_template(source, include_annotations=True)
                   .set_enabled_channels(source.enabled_channels | mask)
                   .add_channel(self.config.data_index, source.channel(self.config.data_index).label or "Data")
                   .add_channel(clock_idx, "Clock"))
        builder.add_samples(zip(stamps.tolist(), values.tolist()))
        return builder.build()
