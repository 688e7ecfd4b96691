# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from collections.abc import Iterable

import numpy as np

from pylsa.capture.capture import Capture
from pylsa.capture.channel import Channel
from pylsa.lib.constants import MAX_CHANNELS
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import EventBus
from pylsa.lib.types import ChannelIndex, SampleRateHz, TimeStamp


class CaptureBuilder:
    """
    Accumulates samples and channel metadata and produces a canonical Capture.

    Samples may be added in any timestamp order. On build they are sorted
    (for duplicate timestamps the last added value wins) and every sample whose
    value equals its predecessor under the enabled-channel mask is dropped.

    Example:
        capture = (CaptureBuilder()
                   .set_sample_rate(1_000_000)
                   .set_channel_count(2)
                   .add_sample(0, 0b11)
                   .add_sample(10, 0b10)
                   .build())
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self._sample_rate: int = 0
        self._channel_count: int | None = None
        self._enabled_mask: int | None = None
        self._labels: dict[int, str] = {}
        self._samples: list[tuple[int, int]] = []
        self._absolute_length: int | None = None
        self._trigger_position: int | None = None
        self._template: Capture | None = None
        self._copy_annotations = False
        self._bus: EventBus | None = None

    def set_sample_rate(self, rate: int) -> CaptureBuilder:
        if rate < 0:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Sample rate must be non-negative, got {rate}")
        self._sample_rate = int(rate)
        return self

    def set_channel_count(self, count: int) -> CaptureBuilder:
        if not 1 <= count <= MAX_CHANNELS:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Channel count must be within 1..{MAX_CHANNELS}, got {count}")
        self._channel_count = count
        return self

    def set_enabled_channels(self, mask: int) -> CaptureBuilder:
        self._enabled_mask = int(mask) & 0xFFFFFFFF
        return self

    def add_channel(self, index: int, label: str = "") -> CaptureBuilder:
        """Enable ``index`` and give it a label; grows the channel count as needed."""
        if not 0 <= index < MAX_CHANNELS:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Channel index {index} outside 0..{MAX_CHANNELS - 1}")
        self._labels[index] = label
        self._channel_count = max(self._channel_count or 0, index + 1)
        if self._enabled_mask is not None:
            self._enabled_mask |= 1 << index
        return self

    def add_sample(self, timestamp: int, value: int) -> CaptureBuilder:
        if timestamp < 0:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Timestamp must be non-negative, got {timestamp}")
        self._samples.append((int(timestamp), int(value)))
        return self

    def add_samples(self, samples: Iterable[tuple[int, int]]) -> CaptureBuilder:
        for timestamp, value in samples:
            self.add_sample(timestamp, value)
        return self

    def set_absolute_length(self, length: int) -> CaptureBuilder:
        self._absolute_length = int(length)
        return self

    def set_trigger_position(self, position: int | None) -> CaptureBuilder:
        self._trigger_position = position
        return self

    def set_event_bus(self, bus: EventBus) -> CaptureBuilder:
        self._bus = bus
        return self

    def apply_template(self, capture: Capture, include_annotations: bool = False) -> CaptureBuilder:
        """
        Copy channel metadata, sample rate, trigger and cursors from ``capture``.

        Samples are not copied; the caller supplies fresh ones.
        """
        self._template = capture
        self._copy_annotations = include_annotations
        self._sample_rate = capture.sample_rate
        self._channel_count = capture.channel_count
        self._enabled_mask = capture.enabled_channels
        self._labels = {ch.index: ch.label for ch in capture.channels}
        self._absolute_length = capture.absolute_length
        self._trigger_position = capture.trigger_position
        self._bus = capture.bus
        return self

    def _resolve_channel_count(self) -> int:
        if self._channel_count is not None:
            return self._channel_count
        highest = 0
        for _, value in self._samples:
            highest |= value
        return max(1, min(MAX_CHANNELS, highest.bit_length()))

    def build(self) -> Capture:
        count = self._resolve_channel_count()
        enabled = self._enabled_mask if self._enabled_mask is not None else (1 << count) - 1

        # Sort by timestamp; dict keeps the last value given for a timestamp
        latest: dict[int, int] = {}
        for ts, value in self._samples:
            latest[ts] = value
        ordered = sorted(latest.items())

        timestamps: list[int] = []
        values: list[int] = []
        prev: int | None = None
        for ts, value in ordered:
            masked = value & enabled
            if prev is not None and masked == prev:
                continue
            timestamps.append(ts)
            values.append(value)
            prev = masked

        dropped = len(self._samples) - len(timestamps)
        if dropped:
            self.logger.debug(f"Dropped {dropped} redundant samples of {len(self._samples)}")

        channels = [
            Channel(index=ChannelIndex(i), label=self._labels.get(i, ""), enabled=bool(enabled & (1 << i)))
            for i in range(count)
        ]

        last = ordered[-1][0] if ordered else 0
        capture = Capture(
            timestamps          =   np.asarray(timestamps, dtype=np.int64),
            values              =   np.asarray(values, dtype=np.int64),
            sample_rate         =   SampleRateHz(self._sample_rate),
            channels            =   channels,
            absolute_length     =   TimeStamp(max(last, self._absolute_length or 0)),
            trigger_position    =   None if self._trigger_position is None else TimeStamp(self._trigger_position),
            bus                 =   self._bus,
        )

        if self._template is not None:
            for cursor in self._template.cursors.defined():
                capture.cursors.set(cursor.id, cursor.timestamp or 0, label=cursor.label, color=cursor.color)
            if self._copy_annotations:
                capture.annotations.copy_from(self._template.annotations)

        return capture
