# tests/test_uart_analyser.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import math
from typing import Any

import pytest

from pylsa.annotation.model import ErrorAnnotation, SymbolAnnotation
from pylsa.capture.builder import CaptureBuilder
from pylsa.capture.capture import Capture
from pylsa.decoder.base import ToolContext
from pylsa.decoder.uart.analyser import UartAnalyserTask
from pylsa.decoder.uart.config import UartConfig
from pylsa.decoder.uart.dataset import UartDataSet, UartEventType
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import Event, EventTopic


def _frame(value: int,
           bits: int = 8,
           parity: str | None = None,
           stop: int = 1,
           msb_first: bool = False,
           inverted: bool = False) -> list[int]:
    data = [(value >> i) & 1 for i in range(bits)]
    if parity == "EVEN":
        pbit = [sum(data) % 2]
    elif parity == "ODD":
        pbit = [1 - sum(data) % 2]
    else:
        pbit = []
    order = list(reversed(data)) if msb_first else data
    line = [b ^ 1 for b in order] if inverted else order
    return [0, *line, *pbit, *([1] * stop)]


def _uart_frames(cells: list[int], bit_length: float, sample_rate: int, channel: int = 0, channels: int = 1) -> Capture:
    """Idle-high line on ``channel`` carrying ``cells`` back to back after a short lead-in."""
    lead = int(10 * bit_length)
    idle = 1 << channel
    builder = (CaptureBuilder()
               .set_sample_rate(sample_rate)
               .set_channel_count(channels)
               .add_sample(0, idle))
    for k, level in enumerate(cells):
        builder.add_sample(lead + round(k * bit_length), level << channel)
    end = lead + round(len(cells) * bit_length)
    builder.add_sample(end, idle)
    return builder.set_absolute_length(end + int(20 * bit_length)).build()


def _decode(capture: Capture, **options: Any) -> UartDataSet:
    task = UartAnalyserTask(ToolContext.from_capture(capture), UartConfig.from_mapping(options))
    return task.decode()


def _symbols(capture: Capture, channel: int = 0) -> list[SymbolAnnotation]:
    return [a for a in capture.annotations.channel_annotations(channel) if isinstance(a, SymbolAnnotation)]


def _errors(capture: Capture, channel: int = 0) -> list[ErrorAnnotation]:
    return [a for a in capture.annotations.channel_annotations(channel) if isinstance(a, ErrorAnnotation)]


def test_single_8n1_symbol_at_115200() -> None:
    capture = _uart_frames(_frame(0x55), 1_000_000 / 115_200, 1_000_000)

    dataset = _decode(capture, rxdIndex=0, baudRate=115_200)

    symbols = _symbols(capture)
    assert [s.value for s in symbols] == [0x55]
    span = symbols[0].end - symbols[0].start
    assert span == math.ceil(10 * 1_000_000 / 115_200)
    assert span == pytest.approx(10 * 1_000_000 / 115_200, abs=1)
    assert _errors(capture) == []
    assert dataset.baud_rate == 115_200
    assert capture.label(0) == "RxD"
    assert symbols[0].properties["eventType"] == "RX_DATA"


def test_7e1_auto_baud_decodes_abc() -> None:
    cells = [c for ch in b"ABC" for c in _frame(ch, bits=7, parity="EVEN")]
    capture = _uart_frames(cells, 12, 115_200)
    failed: list[Event] = []
    capture.bus.subscribe(EventTopic.AUTO_BAUD_FAILED, failed.append)

    dataset = _decode(capture, rxdIndex=0, bitCount=7, parity="even", baudRate="AUTO")

    assert [s.value for s in _symbols(capture)] == [0x41, 0x42, 0x43]
    assert _errors(capture) == []
    assert dataset.baud_rate == 9_600
    assert dataset.sampled_bit_length == pytest.approx(12.0)
    assert dataset.effective_baud_rate == 9_600
    assert dataset.detected_errors == 0
    assert [e.value for e in dataset.symbols] == [0x41, 0x42, 0x43]
    assert failed == []

    report = capture.annotations.metadata()[0]
    assert report.data["baudrate"] == 9_600
    assert report.data["trustworthy"] is False
    assert report.text.startswith("Baudrate = 9600 (exact = 9600)")
    assert "higher samplerate" in report.text


def test_forced_low_stop_bit_is_one_frame_error() -> None:
    second = _frame(0x32)
    second[-1] = 0
    capture = _uart_frames(_frame(0x31) + second, 10, 96_000)

    dataset = _decode(capture, rxdIndex=0, baudRate=9_600)

    symbols = _symbols(capture)
    errors = _errors(capture)
    assert [s.value for s in symbols] == [0x31, 0x32]
    assert [e.error for e in errors] == [ErrorKind.FRAME]
    assert symbols[1].start <= errors[0].start and errors[0].end <= symbols[1].end
    # The error covers the stop cell only
    assert errors[0].start == symbols[1].start + 90
    assert dataset.frame_errors == 1


def test_flipped_data_bit_is_one_parity_error() -> None:
    first = _frame(0x10, parity="EVEN")
    first[1 + 3] ^= 1
    cells = first + _frame(0x20, parity="EVEN") + _frame(0x30, parity="EVEN")
    capture = _uart_frames(cells, 10, 96_000)

    dataset = _decode(capture, rxdIndex=0, baudRate=9_600, parity="EVEN")

    symbols = _symbols(capture)
    errors = _errors(capture)
    assert [s.value for s in symbols] == [0x18, 0x20, 0x30]
    assert [e.error for e in errors] == [ErrorKind.PARITY]
    assert symbols[0].start <= errors[0].start and errors[0].end <= symbols[0].end
    assert dataset.parity_errors == 1
    assert [e.event for e in dataset.events] == ["PARITY"]
    assert dataset.events[0].event_type is UartEventType.RX_EVENT


@pytest.mark.parametrize(
    "parity, value, pbit, error",
    [
        ("ODD",   0x03, 1, False),
        ("ODD",   0x03, 0, True),
        ("EVEN",  0x07, 1, False),
        ("EVEN",  0x07, 0, True),
        ("MARK",  0x00, 1, False),
        ("MARK",  0x00, 0, True),
        ("SPACE", 0xFF, 0, False),
        ("SPACE", 0xFF, 1, True),
    ],
)
def test_parity_modes(parity: str, value: int, pbit: int, error: bool) -> None:
    cells = [0, *[(value >> i) & 1 for i in range(8)], pbit, 1]
    capture = _uart_frames(cells, 10, 96_000)

    _decode(capture, rxdIndex=0, baudRate=9_600, parity=parity)

    assert [s.value for s in _symbols(capture)] == [value]
    assert [e.error for e in _errors(capture)] == ([ErrorKind.PARITY] if error else [])


def test_msb_first_and_inverted_encoding() -> None:
    msb = _uart_frames(_frame(0x4B, msb_first=True), 10, 96_000)
    inv = _uart_frames(_frame(0x4B, inverted=True), 10, 96_000)

    _decode(msb, rxdIndex=0, baudRate=9_600, bitOrder="msb_first")
    _decode(inv, rxdIndex=0, baudRate=9_600, bitEncoding="HIGH_IS_ZERO")

    assert [s.value for s in _symbols(msb)] == [0x4B]
    assert [s.value for s in _symbols(inv)] == [0x4B]


def test_glitch_is_start_error_and_decoding_resumes() -> None:
    capture = (CaptureBuilder()
               .set_sample_rate(96_000)
               .set_channel_count(1)
               .add_samples([(0, 1), (100, 0), (102, 1)])
               .add_samples((200 + 10 * k, level) for k, level in enumerate(_frame(0x5A)))
               .set_absolute_length(500)
               .build())

    dataset = _decode(capture, rxdIndex=0, baudRate=9_600)

    errors = _errors(capture)
    assert [e.error for e in errors] == [ErrorKind.START]
    assert (errors[0].start, errors[0].end) == (100, 110)
    assert [s.value for s in _symbols(capture)] == [0x5A]
    assert dataset.start_errors == 1


def test_two_data_lines_are_decoded_independently() -> None:
    rx = _frame(0x11)
    tx = _frame(0x22)
    builder = CaptureBuilder().set_sample_rate(96_000).set_channel_count(2).add_sample(0, 0b11)
    for k in range(len(rx)):
        builder.add_sample(100 + 10 * k, rx[k] | (tx[k] << 1))
    capture = builder.add_sample(200, 0b11).set_absolute_length(400).build()

    dataset = _decode(capture, rxdIndex=0, txdIndex=1, baudRate=9_600)

    assert [s.value for s in _symbols(capture, 0)] == [0x11]
    assert [s.value for s in _symbols(capture, 1)] == [0x22]
    assert capture.label(1) == "TxD"
    assert {e.event_type for e in dataset.symbols} == {UartEventType.RX_DATA, UartEventType.TX_DATA}


def test_control_lines_report_edges() -> None:
    capture = (CaptureBuilder()
               .set_channel_count(3)
               .add_samples([(0, 0b000), (50, 0b010), (60, 0b110), (80, 0b100)])
               .set_absolute_length(100)
               .build())

    dataset = _decode(capture, ctsIndex=1, rtsIndex=2)

    cts = _symbols(capture, 1)
    assert [(s.start, s.properties["eventType"], s.value) for s in cts] == [(50, "CTS_HIGH", 1), (80, "CTS_LOW", 0)]
    assert [s.text for s in _symbols(capture, 2)] == ["RTS_HIGH"]
    assert [e.event for e in dataset.events] == ["CTS_HIGH", "RTS_HIGH", "CTS_LOW"]
    assert capture.label(2) == "RTS"


def test_decoding_area_from_cursors() -> None:
    cells = [c for ch in b"ABC" for c in _frame(ch)]
    capture = _uart_frames(cells, 10, 96_000)
    capture.cursors.set(0, 305)
    capture.cursors.set(1, 195)

    context = ToolContext.from_cursors(capture, capture.cursors.get(0), capture.cursors.get(1))
    UartAnalyserTask(context, UartConfig.from_mapping({"rxdIndex": 0, "baudRate": 9_600})).decode()

    assert [s.value for s in _symbols(capture)] == [0x42]


def test_auto_baud_failure_is_no_signal() -> None:
    capture = (CaptureBuilder()
               .set_sample_rate(1_000_000)
               .set_channel_count(1)
               .add_samples([(0, 1), (100, 0), (200, 1)])
               .set_absolute_length(1_000)
               .build())
    failed: list[Event] = []
    capture.bus.subscribe(EventTopic.AUTO_BAUD_FAILED, failed.append)

    with pytest.raises(ToolError) as info:
        _decode(capture, rxdIndex=0)

    assert info.value.kind is ErrorKind.NO_SIGNAL
    assert _symbols(capture) == []
    assert [e.payload["channel"] for e in failed] == [0]
    assert capture.annotations.metadata()[0].text == "Baud rate calculation failed!"


def test_quiet_lines_are_range_empty() -> None:
    capture = CaptureBuilder().set_sample_rate(1_000).set_channel_count(1).add_sample(0, 1).set_absolute_length(99).build()

    with pytest.raises(ToolError) as info:
        _decode(capture, rxdIndex=0, baudRate=100)
    assert info.value.kind is ErrorKind.RANGE_EMPTY


def test_configuration_is_checked_against_capture() -> None:
    capture = _uart_frames(_frame(0x55), 10, 96_000)
    with pytest.raises(ToolError) as info:
        _decode(capture, rxdIndex=3, baudRate=9_600)
    assert info.value.kind is ErrorKind.INVALID_CONFIG

    state = _uart_frames(_frame(0x55), 10, 0)
    with pytest.raises(ToolError) as info:
        _decode(state, rxdIndex=0, baudRate=9_600)
    assert info.value.kind is ErrorKind.INVALID_CONFIG
    assert len(state.annotations) == 0


@pytest.mark.parametrize(
    "options",
    [
        {"rxdIndex": 0, "baudRate": 0},
        {"rxdIndex": 0, "txdIndex": 0},
        {"rxdIndex": 32},
        {"rxdIndex": "0"},
        {"rxdIndex": 0, "bitCount": 4},
        {"rxdIndex": 0, "parity": "SOMETIMES"},
        {"rxdIndex": 0, "stopBits": 3},
        {"rxdIndex": 0, "flowControl": True},
        {},
    ],
)
def test_invalid_options(options: dict[str, Any]) -> None:
    with pytest.raises(ToolError) as info:
        UartConfig.from_mapping(options)
    assert info.value.kind is ErrorKind.INVALID_CONFIG


def test_option_parsing() -> None:
    cfg = UartConfig.from_mapping({"rxdIndex": 0, "baudRate": -5, "stopBits": "1.5", "idleLevel": "low"})

    assert cfg.is_auto_baud
    assert cfg.stop_bits.value == 1.5
    assert cfg.idle_level.bit == 0
    assert cfg.mask == 0b1
    assert UartConfig.from_mapping({"txdIndex": 2, "stopBits": "TWO"}).stop_bits.value == 2.0


@pytest.mark.parametrize("stop_bits, cells, end", [(1.5, 10, 2_050), (2, 11, 2_100)])
def test_fractional_and_double_stop_bits(stop_bits: float, cells: int, end: int) -> None:
    frame = _frame(0x55, stop=cells - 9)
    capture = _uart_frames(frame, 100, 1_000_000)

    dataset = _decode(capture, rxdIndex=0, baudRate=10_000, stopBits=stop_bits)

    assert [(s.start, s.end, s.value) for s in _symbols(capture)] == [(1_000, end, 0x55)]
    assert _errors(capture) == []
    assert dataset.detected_errors == 0


def test_low_second_stop_bit_is_a_frame_error() -> None:
    frame = _frame(0x55, stop=2)
    frame[-1] = 0
    capture = _uart_frames(frame, 100, 1_000_000)

    _decode(capture, rxdIndex=0, baudRate=10_000, stopBits="2")

    errors = _errors(capture)
    assert [(s.start, s.end, s.value) for s in _symbols(capture)] == [(1_000, 2_100, 0x55)]
    assert [(e.error, e.start, e.end) for e in errors] == [(ErrorKind.FRAME, 2_000, 2_100)]


@pytest.mark.parametrize("encoding, inverted", [("HIGH_IS_ONE", False), ("HIGH_IS_ZERO", True)])
def test_idle_low_line(encoding: str, inverted: bool) -> None:
    data = _frame(0x4B, inverted=inverted)[1:-1]
    cells = [1, *data, 0]
    capture = (CaptureBuilder()
               .set_sample_rate(96_000)
               .set_channel_count(1)
               .add_sample(0, 0)
               .add_samples((100 + 10 * k, level) for k, level in enumerate(cells))
               .set_absolute_length(400)
               .build())

    _decode(capture, rxdIndex=0, baudRate=9_600, idleLevel="LOW", bitEncoding=encoding)

    assert [(s.start, s.end, s.value) for s in _symbols(capture)] == [(100, 200, 0x4B)]
    assert _errors(capture) == []


def test_edge_inside_a_cell_is_a_frame_error() -> None:
    # 0xFF then 0x0F back to back; a short dip sits between two sample points of bit 4
    cells = _frame(0xFF) + _frame(0x0F)
    capture = (CaptureBuilder()
               .set_sample_rate(96_000)
               .set_channel_count(1)
               .add_sample(0, 1)
               .add_samples((100 + 10 * k, level) for k, level in enumerate(cells))
               .add_samples([(152, 0), (154, 1)])
               .add_sample(300, 1)
               .set_absolute_length(500)
               .build())

    dataset = _decode(capture, rxdIndex=0, baudRate=9_600)

    errors = _errors(capture)
    assert [s.value for s in _symbols(capture)] == [0xFF, 0x0F]
    assert [(e.error, e.start, e.end) for e in errors] == [(ErrorKind.FRAME, 150, 160)]
    # The dip is not taken as a start bit
    assert [s.start for s in _symbols(capture)] == [100, 200]
    assert dataset.frame_errors == 1
    assert dataset.start_errors == 0


def test_data_lines_keep_their_own_baud_rate() -> None:
    rx = [c for ch in b"Hello" for c in _frame(ch)]
    tx = [c for ch in b"World" for c in _frame(ch)]

    def level(cells: list[int], length: int, t: int) -> int:
        k = (t - 100) // length
        return cells[k] if t >= 100 and k < len(cells) else 1

    builder = CaptureBuilder().set_sample_rate(96_000).set_channel_count(2)
    for t in range(0, 100 + 20 * len(tx) + 10, 10):
        builder.add_sample(t, level(rx, 10, t) | level(tx, 20, t) << 1)
    capture = builder.set_absolute_length(100 + 20 * len(tx) + 400).build()

    dataset = _decode(capture, rxdIndex=0, txdIndex=1, baudRate="AUTO")

    assert [s.value for s in _symbols(capture, 0)] == list(b"Hello")
    assert [s.value for s in _symbols(capture, 1)] == list(b"World")
    assert dataset.line_baud_rates == {0: 9_600, 1: 4_800}
    assert dataset.line_bit_lengths[0] == pytest.approx(10.0)
    assert dataset.line_bit_lengths[1] == pytest.approx(20.0)
    # The scalar fields describe the last decoded line
    assert dataset.baud_rate == 4_800
    assert dataset.sampled_bit_length == pytest.approx(20.0)
