# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from pylsa.annotation.sink import AnnotationSink
from pylsa.capture.channel import Channel
from pylsa.capture.cursor import CursorSet
from pylsa.lib.constants import MAX_CHANNELS
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import EventBus
from pylsa.lib.types import (
    ChannelIndex,
    ChannelMask,
    NDArrayI64,
    SampleIndex,
    SampleRateHz,
    SampleValue,
    TimeStamp,
)


class Capture:
    """
    Immutable, time ordered set of packed channel samples.

    Bit ``k`` of ``values[i]`` is the level of channel ``k`` over the
    half-open span ``[timestamps[i], timestamps[i + 1])``; the last span ends
    (inclusive) at ``absolute_length``. Sample arrays are read-only numpy views;
    only the cursors and the annotation side-car are mutable.

    Captures are normally produced by ``CaptureBuilder``.
    """

    def __init__(self,
                 timestamps: NDArrayI64,
                 values: NDArrayI64,
                 sample_rate: SampleRateHz,
                 channels: Sequence[Channel],
                 absolute_length: TimeStamp | None = None,
                 trigger_position: TimeStamp | None = None,
                 bus: EventBus | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

        ts = np.array(timestamps, dtype=np.int64, copy=True)
        vals = np.array(values, dtype=np.int64, copy=True)

        if ts.ndim != 1 or vals.ndim != 1 or ts.shape != vals.shape:
            raise ToolError(ErrorKind.INVALID_CONFIG,
                            f"timestamps and values must be 1-D of equal length, got {ts.shape} and {vals.shape}")
        if ts.size and ts[0] < 0:
            raise ToolError(ErrorKind.INVALID_CONFIG, "Timestamps must be non-negative")
        if ts.size > 1 and not np.all(np.diff(ts) > 0):
            raise ToolError(ErrorKind.INVALID_CONFIG, "Timestamps must be strictly increasing")
        if not 1 <= len(channels) <= MAX_CHANNELS:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Channel count must be within 1..{MAX_CHANNELS}, got {len(channels)}")
        if sample_rate < 0:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Sample rate must be non-negative, got {sample_rate}")

        ts.setflags(write=False)
        vals.setflags(write=False)
        self._timestamps: NDArrayI64 = ts
        self._values: NDArrayI64 = vals
        self._sample_rate = SampleRateHz(int(sample_rate))
        self._channels: tuple[Channel, ...] = tuple(sorted(channels, key=lambda c: c.index))

        last = int(ts[-1]) if ts.size else 0
        self._absolute_length = TimeStamp(max(last, int(absolute_length or 0)))
        self._trigger_position = trigger_position

        self._bus = bus if bus is not None else EventBus()
        self.cursors = CursorSet(bus=self._bus)
        self.annotations = AnnotationSink(bus=self._bus)

    # ── sample data ─────────────────────────────────────────────────────────
    @property
    def timestamps(self) -> NDArrayI64:
        return self._timestamps

    @property
    def values(self) -> NDArrayI64:
        return self._values

    @property
    def size(self) -> int:
        return int(self._timestamps.size)

    def __len__(self) -> int:
        return self.size

    @property
    def sample_rate(self) -> SampleRateHz:
        return self._sample_rate

    def has_timing_data(self) -> bool:
        return self._sample_rate > 0

    @property
    def absolute_length(self) -> TimeStamp:
        return self._absolute_length

    @property
    def trigger_position(self) -> TimeStamp | None:
        return self._trigger_position

    def has_trigger(self) -> bool:
        return self._trigger_position is not None

    @property
    def bus(self) -> EventBus:
        return self._bus

    def timestamp(self, index: int) -> TimeStamp:
        self._check_index(index)
        return TimeStamp(int(self._timestamps[index]))

    def value(self, index: int) -> SampleValue:
        self._check_index(index)
        return SampleValue(int(self._values[index]))

    def sample_index(self, ts: int) -> SampleIndex:
        """Greatest ``i`` with ``timestamps[i] <= ts``, clamped to ``[0, N - 1]``."""
        if not self.size:
            raise ToolError(ErrorKind.OUT_OF_RANGE, "Capture holds no samples")
        idx = int(np.searchsorted(self._timestamps, ts, side="right")) - 1
        return SampleIndex(min(max(idx, 0), self.size - 1))

    def value_at(self, ts: int) -> SampleValue:
        return SampleValue(int(self._values[self.sample_index(ts)]))

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.size:
            raise ToolError(ErrorKind.OUT_OF_RANGE, f"Sample index {index} outside [0, {self.size})")

    # ── channel metadata ────────────────────────────────────────────────────
    @property
    def channel_count(self) -> int:
        return len(self._channels)

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._channels

    @property
    def enabled_channels(self) -> ChannelMask:
        mask = 0
        for ch in self._channels:
            if ch.enabled:
                mask |= ch.mask
        return ChannelMask(mask)

    def channel(self, index: int) -> Channel:
        if not 0 <= index < len(self._channels):
            raise ToolError(ErrorKind.OUT_OF_RANGE, f"Channel {index} outside [0, {len(self._channels)})")
        return self._channels[index]

    def is_channel_enabled(self, index: ChannelIndex | int) -> bool:
        return 0 <= index < len(self._channels) and self._channels[index].enabled

    def label(self, index: int) -> str:
        """Decoder label of the channel when one was set, else its static label."""
        label = self.annotations.label(index)
        return label if label is not None else self.channel(index).label

    def __repr__(self) -> str:
        return (f"Capture(samples={self.size}, channels={self.channel_count}, "
                f"sample_rate={self._sample_rate}, absolute_length={self._absolute_length})")
