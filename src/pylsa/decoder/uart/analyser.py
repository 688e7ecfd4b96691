# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from fractions import Fraction
from typing import ClassVar

import numpy as np

from pylsa.annotation.model import ErrorAnnotation, MetadataAnnotation, SymbolAnnotation
from pylsa.decoder.base import DecoderTask, ProgressMonitor, ToolContext
from pylsa.decoder.uart.baud_rate import AutoBaudEstimator, BaudRateEstimate
from pylsa.decoder.uart.config import UartConfig, UartLine
from pylsa.decoder.uart.dataset import UartDataSet, UartEventType
from pylsa.decoder.uart.serial_decoder import AsyncSerialDecoder
from pylsa.lib.constants import KEY_EVENT_TYPE, KEY_TEXT, KEY_TYPE, TYPE_EVENT, TYPE_SYMBOL
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import EventTopic
from pylsa.lib.types import BaudRate, BitLength, ChannelIndex, SampleIndex, TimeStamp

PRESCAN_BACKOFF: int = 10


def baud_rate_text(estimate: BaudRateEstimate) -> str:
    if estimate.bit_length <= 0:
        return "Baud rate calculation failed!"
    text = f"Baudrate = {estimate.baud_rate} (exact = {int(estimate.baud_rate_exact)})"
    if not estimate.trustworthy:
        text += "\nThe baudrate may be wrong, use a higher samplerate to avoid this!"
    return text


class _LineCallback:
    """Turns decoder callbacks into annotations and data set entries for one data line."""

    def __init__(self, task: UartAnalyserTask, dataset: UartDataSet, event_type: UartEventType) -> None:
        self.task = task
        self.dataset = dataset
        self.event_type = event_type

    def on_symbol(self, channel: int, symbol: int, start: TimeStamp, end: TimeStamp) -> None:
        capture = self.task.capture
        self.dataset.report_data(channel, capture.sample_index(start), capture.sample_index(end), symbol, self.event_type)
        self.task.annotations.add(SymbolAnnotation(
            channel     =   ChannelIndex(channel),
            start       =   start,
            end         =   end,
            value       =   symbol,
            properties  =   {KEY_TYPE: TYPE_SYMBOL, KEY_EVENT_TYPE: self.event_type.value},
        ))

    def on_error(self, channel: int, kind: ErrorKind, start: TimeStamp, end: TimeStamp) -> None:
        self.dataset.report_error(kind, channel, self.task.capture.sample_index(start), self.event_type)
        self.task.annotations.add(ErrorAnnotation(channel=ChannelIndex(channel), start=start, end=end, error=kind))


class UartAnalyserTask(DecoderTask[UartDataSet]):
    """
    Decodes the RxD/TxD data lines and traces the modem control lines of a
    UART inside the decoding area.
    """
    name: ClassVar[str] = "uart"

    def __init__(self,
                 context: ToolContext,
                 config: UartConfig,
                 monitor: ProgressMonitor | None = None,
                 estimator: AutoBaudEstimator | None = None) -> None:
        super().__init__(context, monitor)
        self.config = config
        self.estimator = estimator if estimator is not None else AutoBaudEstimator()

    def _validate(self) -> None:
        capture = self.capture
        for line, idx in self.config.lines():
            if idx >= capture.channel_count:
                raise ToolError(ErrorKind.INVALID_CONFIG,
                                f"{line.value} index {idx} exceeds the capture's {capture.channel_count} channels")
        if self.config.data_lines() and not capture.has_timing_data():
            raise ToolError(ErrorKind.INVALID_CONFIG, "UART decoding needs a capture with a sample rate")

    def _prescan(self) -> tuple[int, int]:
        """First state change of any configured line, backed off a few samples but kept inside the area."""
        start = self.context.start_index
        end = self.context.end_index
        masked = self.capture.values[start:end + 1] & self.config.mask
        changes = np.flatnonzero(masked != masked[0])
        if changes.size == 0:
            raise ToolError(ErrorKind.RANGE_EMPTY, "No state change on the configured UART lines")
        first = start + int(changes[0])
        return max(start, first - PRESCAN_BACKOFF), end

    def decode(self) -> UartDataSet:
        self._validate()
        start_idx, end_idx = self._prescan()
        capture = self.capture

        dataset = UartDataSet(start_of_decode=SampleIndex(start_idx), end_of_decode=SampleIndex(end_idx),
                              sample_rate=capture.sample_rate)
        t_start = capture.timestamp(start_idx)
        t_end = self.context.end_ts if end_idx == self.context.end_index else capture.timestamp(end_idx)

        lines = self.config.lines()
        data_lines = self.config.data_lines()
        decoded = 0
        for stage, (line, idx) in enumerate(data_lines):
            self.monitor.begin_stage(stage, len(lines))
            self.prepare_channel(idx, line.value)
            if self._decode_data(dataset, line, idx, start_idx, end_idx, t_start, t_end):
                decoded += 1

        if data_lines and decoded == 0:
            raise ToolError(ErrorKind.NO_SIGNAL, "No usable data found for determining the baud rate")

        for stage, (line, idx) in enumerate(self.config.control_lines(), start=len(data_lines)):
            self.monitor.begin_stage(stage, len(lines))
            self.prepare_channel(idx, line.value)
            self._decode_control(dataset, line, idx, t_start, t_end)

        dataset.sort()
        self.monitor.finish()
        self.logger.info(f"UART decode finished: {len(dataset.symbols)} symbols, "
                         f"{dataset.detected_errors} errors")
        return dataset

    def _estimate(self, idx: int, start_idx: int, end_idx: int) -> BaudRateEstimate:
        if self.config.is_auto_baud:
            return self.estimator.estimate(self.capture, 1 << idx, start_idx, end_idx, monitor=self.monitor)

        rate = self.config.baud_rate
        bit_length = self.capture.sample_rate / rate
        return BaudRateEstimate(
            bit_length      =   BitLength(bit_length),
            baud_rate       =   BaudRate(rate),
            baud_rate_exact =   float(rate),
            trustworthy     =   bit_length > self.estimator.trustworthy_bit_length,
        )

    def _decode_data(self,
                     dataset: UartDataSet,
                     line: UartLine,
                     idx: int,
                     start_idx: int,
                     end_idx: int,
                     t_start: int,
                     t_end: int) -> bool:
        estimate = self._estimate(idx, start_idx, end_idx)
        self.annotations.add(MetadataAnnotation(
            channel =   ChannelIndex(idx),
            text    =   baud_rate_text(estimate),
            data    =   {
                "bitlength":        float(estimate.bit_length),
                "baudrate":         int(estimate.baud_rate),
                "baudrateExact":    float(estimate.baud_rate_exact),
                "trustworthy":      estimate.trustworthy,
            },
        ))

        if estimate.failed:
            self.logger.warning(f"No usable {line.value} data found for determining bitlength/baudrate")
            dataset.failed_channels.append(idx)
            self.context.bus.publish(EventTopic.AUTO_BAUD_FAILED, channel=idx)
            return False

        dataset.baud_rate = int(estimate.baud_rate)
        serial = self.config.serial_configuration(max(1, int(round(estimate.baud_rate_exact))))
        decoder = AsyncSerialDecoder(
            capture     =   self.capture,
            config      =   serial,
            callback    =   _LineCallback(self, dataset, UartEventType.RX_DATA if line is UartLine.RXD
                                          else UartEventType.TX_DATA),
            monitor     =   self.monitor,
        )
        if self.config.is_auto_baud:
            decoder.bit_length = Fraction(float(estimate.bit_length)).limit_denominator(1 << 16)

        self.logger.debug(f"{line.value}: decoding at {estimate.baud_rate} bps")
        bit_length = decoder.decode_line(idx, t_start, t_end)
        dataset.line_baud_rates[idx] = int(estimate.baud_rate)
        dataset.line_bit_lengths[idx] = bit_length
        dataset.sampled_bit_length = bit_length
        return True

    def _decode_control(self, dataset: UartDataSet, line: UartLine, idx: int, t_start: int, t_end: int) -> None:
        self.logger.debug(f"Decoding control: {line.value} ...")
        _, stamps, levels = self.scanner.transitions(idx, t_start, t_end)
        for n, (ts, level) in enumerate(zip(stamps.tolist(), levels.tolist())):
            self.monitor.check_cancelled()
            if self.monitor.due(n):
                self.monitor.set_position(ts, t_start, t_end)
            high = level == 1
            event = f"{line.value}_{'HIGH' if high else 'LOW'}"
            dataset.report_control(idx, self.capture.sample_index(ts), line.value, high)
            self.annotations.add(SymbolAnnotation(
                channel     =   ChannelIndex(idx),
                start       =   TimeStamp(ts),
                end         =   TimeStamp(ts),
                value       =   level,
                properties  =   {KEY_TYPE: TYPE_EVENT, KEY_EVENT_TYPE: event, KEY_TEXT: event},
            ))
