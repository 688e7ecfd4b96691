# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Protocol

import numpy as np

from pylsa.capture.capture import Capture
from pylsa.capture.edge import EdgeScanner
from pylsa.decoder.base import ProgressMonitor
from pylsa.decoder.uart.config import BitEncoding, BitOrder, Parity, SerialConfiguration, StopBits
from pylsa.lib.errors import ErrorKind
from pylsa.lib.types import NDArrayI64, TimeStamp


class SerialDecoderCallback(Protocol):
    def on_symbol(self, channel: int, symbol: int, start: TimeStamp, end: TimeStamp) -> None: ...

    def on_error(self, channel: int, kind: ErrorKind, start: TimeStamp, end: TimeStamp) -> None: ...


@dataclass(frozen=True, slots=True)
class _Cell:
    """One bit cell of a frame, in bit-length units from the start edge."""
    offset: Fraction
    width: Fraction

    @property
    def centre(self) -> Fraction:
        return self.offset + self.width / 2

    @property
    def end(self) -> Fraction:
        return self.offset + self.width


class _Line:
    """Transitions of one channel with O(log n) level and edge lookups."""

    def __init__(self, initial: int, stamps: NDArrayI64, levels: NDArrayI64) -> None:
        self.initial = initial
        self.stamps = stamps
        self.levels = levels

    def level_at(self, t: int) -> int:
        idx = int(np.searchsorted(self.stamps, t, side="right"))
        return int(self.levels[idx - 1]) if idx else self.initial

    def next_edge_to(self, level: int, after: int) -> int | None:
        """First edge strictly after ``after`` whose new level is ``level``."""
        idx = int(np.searchsorted(self.stamps, after, side="right"))
        while idx < self.stamps.size:
            if int(self.levels[idx]) == level:
                return int(self.stamps[idx])
            idx += 1
        return None

    def edges_inside(self, lo: int, hi: int) -> NDArrayI64:
        """Edge timestamps with ``lo < t < hi``."""
        a = int(np.searchsorted(self.stamps, lo, side="right"))
        b = int(np.searchsorted(self.stamps, hi, side="left"))
        return self.stamps[a:b]


class AsyncSerialDecoder:
    """
    Start/data/parity/stop state machine over one asynchronous serial line.

    Bit timing is kept as an exact fraction of sample ticks; the sample point
    of bit cell ``k`` is ``t0 + round((k + 0.5) * L)`` using round-half-even.
    Resynchronisation always happens on the next idle to non-idle edge after
    the last sample point, never on a drifted bit boundary.
    """

    def __init__(self,
                 capture: Capture,
                 config: SerialConfiguration,
                 callback: SerialDecoderCallback,
                 monitor: ProgressMonitor | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.capture = capture
        self.config = config
        self.callback = callback
        self.monitor = monitor if monitor is not None else ProgressMonitor()
        self.bit_length: Fraction = config.bit_length(capture.sample_rate)
        self.cells = self._frame_cells()

    def _frame_cells(self) -> list[_Cell]:
        one = Fraction(1)
        count = 1 + self.config.bit_count + self.config.parity_bits
        cells = [_Cell(Fraction(k), one) for k in range(count)]
        cells.append(_Cell(Fraction(count), one))
        if self.config.stop_bits is StopBits.ONE_HALF:
            cells.append(_Cell(Fraction(count + 1), Fraction(1, 2)))
        elif self.config.stop_bits is StopBits.TWO:
            cells.append(_Cell(Fraction(count + 1), one))
        return cells

    def _at(self, t0: int, units: Fraction) -> int:
        return t0 + round(units * self.bit_length)

    def _span(self, t0: int, cell: _Cell) -> tuple[TimeStamp, TimeStamp]:
        return TimeStamp(self._at(t0, cell.offset)), TimeStamp(t0 + math.ceil(cell.end * self.bit_length))

    def decode_line(self, channel: int, start: int, end: int) -> float:
        """
        Decode ``channel`` between timestamps ``start`` and ``end``.

        Returns:
            The bit length, in sample ticks, used for decoding.
        """
        cfg = self.config
        scanner = EdgeScanner(self.capture)
        line = _Line(*scanner.transitions(channel, start, end))

        idle = cfg.idle_level.bit
        active = 1 - idle
        invert = cfg.bit_encoding is BitEncoding.HIGH_IS_ZERO
        data_cells = self.cells[1:1 + cfg.bit_count]
        parity_cell = self.cells[1 + cfg.bit_count] if cfg.parity is not Parity.NONE else None
        stop_cells = self.cells[1 + cfg.bit_count + cfg.parity_bits:]
        frame_len = stop_cells[-1].end
        jitter = self.bit_length / 8

        self.logger.debug(f"Decoding channel {channel} over [{start}, {end}], bit length {float(self.bit_length):.3f}")

        symbols = 0
        cursor = start - 1
        while True:
            self.monitor.check_cancelled()

            t0 = line.next_edge_to(active, cursor)
            if t0 is None or t0 >= end:
                break

            # START_CANDIDATE
            start_sample = self._at(t0, self.cells[0].centre)
            if line.level_at(start_sample) != active:
                s, e = self._span(t0, self.cells[0])
                self.callback.on_error(channel, ErrorKind.START, s, e)
                cursor = start_sample
                continue

            # DATA
            value = 0
            ones = 0
            for i, cell in enumerate(data_cells):
                bit = line.level_at(self._at(t0, cell.centre)) ^ invert
                ones += bit
                if cfg.bit_order is BitOrder.LSB_FIRST:
                    value |= bit << i
                else:
                    value = (value << 1) | bit

            # PARITY
            if parity_cell is not None:
                pbit = line.level_at(self._at(t0, parity_cell.centre)) ^ invert
                if not self._parity_ok(ones, pbit):
                    s, e = self._span(t0, parity_cell)
                    self.callback.on_error(channel, ErrorKind.PARITY, s, e)

            # STOP
            frame_cell: _Cell | None = None
            last_sample = t0
            for cell in stop_cells:
                last_sample = self._at(t0, cell.centre)
                if line.level_at(last_sample) != idle:
                    frame_cell = cell
                    break

            frame_end = t0 + math.ceil(frame_len * self.bit_length)
            drifted = self._drifted_cell(line, t0, frame_end, jitter)
            if drifted is not None and (frame_cell is None or drifted.offset < frame_cell.offset):
                frame_cell = drifted
            if frame_cell is not None:
                s, e = self._span(t0, frame_cell)
                self.callback.on_error(channel, ErrorKind.FRAME, s, e)

            # EMIT
            self.callback.on_symbol(channel, value, TimeStamp(t0), TimeStamp(frame_end))
            symbols += 1

            cursor = max(last_sample, self._at(t0, stop_cells[0].centre))
            self.monitor.set_position(cursor, start, end)

        self.logger.debug(f"Channel {channel}: {symbols} symbols decoded")
        return float(self.bit_length)

    def _drifted_cell(self, line: _Line, t0: int, frame_end: int, jitter: Fraction) -> _Cell | None:
        """First cell holding an edge farther than ``jitter`` from every expected cell boundary."""
        inside = line.edges_inside(t0, frame_end)
        if inside.size == 0:
            return None
        for edge in inside:
            pos = Fraction(int(edge) - t0) / self.bit_length
            for cell in self.cells:
                if cell.offset <= pos < cell.end:
                    near_start = (pos - cell.offset) * self.bit_length <= jitter
                    near_end = (cell.end - pos) * self.bit_length <= jitter
                    if not (near_start or near_end):
                        return cell
                    break
        return None

    def _parity_ok(self, ones: int, parity_bit: int) -> bool:
        parity = self.config.parity
        if parity is Parity.ODD:
            return (ones + parity_bit) % 2 == 1
        if parity is Parity.EVEN:
            return (ones + parity_bit) % 2 == 0
        if parity is Parity.MARK:
            return parity_bit == 1
        if parity is Parity.SPACE:
            return parity_bit == 0
        return True
