# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from collections.abc import Iterator

import numpy as np

from pylsa.capture.capture import Capture
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.constants import MAX_CHANNELS
from pylsa.lib.types import NDArrayI64, StringEnum, TimeStamp


class Edge(StringEnum):
    NONE    = "none"
    RISING  = "rising"
    FALLING = "falling"

    @classmethod
    def between(cls, previous: int, current: int, mask: int) -> Edge:
        """Classify the transition of the masked bits from ``previous`` to ``current``."""
        prev = previous & mask
        curr = current & mask
        if prev == curr:
            return cls.NONE
        return cls.RISING if curr > prev else cls.FALLING

    @property
    def is_rising(self) -> bool:
        return self is Edge.RISING

    @property
    def is_falling(self) -> bool:
        return self is Edge.FALLING


class EdgeScanner:
    """
    Edge search over one capture.

    Reference indices come from a binary search on the timestamps; the masked
    value sequence is then scanned linearly in growing chunks, so a lookup costs
    roughly ``O(log N + k)`` for ``k`` samples between the bounds.

    ``edge_after`` and ``edge_before`` keep the historical sentinel: when no
    edge exists they return ``timestamps[0]``, which cannot be told apart from a
    real edge at the origin. ``try_edge_after``/``try_edge_before`` return
    ``None`` instead.
    """

    _FIRST_CHUNK: int = 256
    _MAX_CHUNK: int = 1 << 20

    def __init__(self, capture: Capture) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.capture = capture

    # ── helpers ─────────────────────────────────────────────────────────────
    @staticmethod
    def _check_channel(channel: int) -> None:
        if not 0 <= channel < MAX_CHANNELS:
            raise ToolError(ErrorKind.OUT_OF_RANGE, f"Channel {channel} outside 0..{MAX_CHANNELS - 1}")

    def _bits(self, channel: int, lo: int, hi: int) -> NDArrayI64:
        return (self.capture.values[lo:hi] >> channel) & 1

    def level(self, channel: int, ts: int) -> int:
        """Level (0/1) of ``channel`` at ``ts``."""
        self._check_channel(channel)
        return (self.capture.value_at(ts) >> channel) & 1

    def _first_change_after(self, channel: int, index: int) -> int | None:
        """Smallest ``j > index`` whose bit differs from the bit at ``index``."""
        values = self.capture.values
        level = (int(values[index]) >> channel) & 1
        start = index + 1
        chunk = self._FIRST_CHUNK
        while start < values.size:
            stop = min(values.size, start + chunk)
            hits = np.flatnonzero(self._bits(channel, start, stop) != level)
            if hits.size:
                return start + int(hits[0])
            start = stop
            chunk = min(chunk * 2, self._MAX_CHUNK)
        return None

    def _run_start(self, channel: int, index: int) -> int | None:
        """Index ``j <= index`` where the current level run began; None when it starts at sample 0."""
        values = self.capture.values
        level = (int(values[index]) >> channel) & 1
        stop = index
        chunk = self._FIRST_CHUNK
        while stop > 0:
            start = max(0, stop - chunk)
            hits = np.flatnonzero(self._bits(channel, start, stop) != level)
            if hits.size:
                return start + int(hits[-1]) + 1
            stop = start
            chunk = min(chunk * 2, self._MAX_CHUNK)
        return None

    # ── single edge lookups ─────────────────────────────────────────────────
    def try_edge_after(self, channel: int, ts: int) -> TimeStamp | None:
        self._check_channel(channel)
        if not self.capture.size:
            return None
        index = self.capture.sample_index(ts)
        found = self._first_change_after(channel, index)
        return None if found is None else self.capture.timestamp(found)

    def try_edge_before(self, channel: int, ts: int) -> TimeStamp | None:
        self._check_channel(channel)
        if not self.capture.size:
            return None
        index = self.capture.sample_index(ts)
        if ts < self.capture.timestamps[0]:
            return None
        found = self._run_start(channel, index)
        return None if found is None else self.capture.timestamp(found)

    def edge_after(self, channel: int, ts: int) -> TimeStamp:
        """Smallest ``t > ts`` at which the channel changes level, else ``timestamps[0]``."""
        found = self.try_edge_after(channel, ts)
        return found if found is not None else self._sentinel()

    def edge_before(self, channel: int, ts: int) -> TimeStamp:
        """Greatest ``t <= ts`` at which the channel changed level, else ``timestamps[0]``."""
        found = self.try_edge_before(channel, ts)
        return found if found is not None else self._sentinel()

    def _sentinel(self) -> TimeStamp:
        if not self.capture.size:
            raise ToolError(ErrorKind.OUT_OF_RANGE, "Capture holds no samples")
        return self.capture.timestamp(0)

    # ── enumeration ─────────────────────────────────────────────────────────
    def edges(self, channel: int, t0: int, t1: int) -> Iterator[tuple[TimeStamp, int]]:
        """
        Lazily yield ``(timestamp, new_level)`` for each level change of
        ``channel`` with ``t0 < timestamp <= t1``.
        """
        self._check_channel(channel)
        capture = self.capture
        if not capture.size or t1 <= t0:
            return

        index = capture.sample_index(t0)
        last = capture.sample_index(t1)
        timestamps = capture.timestamps
        chunk = self._FIRST_CHUNK

        level = (int(capture.values[index]) >> channel) & 1
        start = index + 1
        while start <= last:
            stop = min(last + 1, start + chunk)
            bits = self._bits(channel, start, stop)
            prev = np.concatenate(([level], bits[:-1]))
            for j in np.flatnonzero(bits != prev):
                ts = int(timestamps[start + j])
                if ts > t0:
                    yield TimeStamp(ts), int(bits[j])
            level = int(bits[-1])
            start = stop
            chunk = min(chunk * 2, self._MAX_CHUNK)

    def transitions(self,
                    channel: int,
                    t0: int | None = None,
                    t1: int | None = None) -> tuple[int, NDArrayI64, NDArrayI64]:
        """
        Every level change of ``channel`` inside ``(t0, t1]`` as arrays.

        Returns:
            ``(initial_level, timestamps, new_levels)`` where ``initial_level``
            is the level at ``t0`` (or at the first sample when ``t0`` is None).
        """
        self._check_channel(channel)
        capture = self.capture
        if not capture.size:
            empty = np.empty(0, dtype=np.int64)
            return 0, empty, empty
        lo = capture.sample_index(t0) if t0 is not None else 0
        hi = capture.sample_index(t1) if t1 is not None else capture.size - 1
        bits = self._bits(channel, lo, hi + 1)
        changes = np.flatnonzero(np.diff(bits)) + 1
        stamps = capture.timestamps[lo + changes]
        levels = bits[changes]
        if t0 is not None:
            keep = stamps > t0
            stamps, levels = stamps[keep], levels[keep]
        return int(bits[0]), stamps, levels
