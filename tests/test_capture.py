# tests/test_capture.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import numpy as np
import pytest

from pylsa.annotation.model import LabelAnnotation, SymbolAnnotation
from pylsa.capture.builder import CaptureBuilder
from pylsa.capture.capture import Capture
from pylsa.capture.channel import Channel
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import Event, EventBus, EventTopic
from pylsa.lib.types import ChannelIndex, SampleRateHz, TimeStamp


@pytest.fixture()
def capture() -> Capture:
    return (CaptureBuilder()
            .set_sample_rate(1_000)
            .set_channel_count(2)
            .add_sample(0, 0b00)
            .add_sample(10, 0b01)
            .add_sample(20, 0b11)
            .add_sample(35, 0b10)
            .set_absolute_length(50)
            .build())


def test_accessors(capture: Capture) -> None:
    assert capture.size == len(capture) == 4
    assert capture.timestamp(2) == 20
    assert capture.value(3) == 0b10
    assert capture.sample_rate == 1_000
    assert capture.has_timing_data()
    assert capture.absolute_length == 50
    assert not capture.has_trigger()


@pytest.mark.parametrize("ts, index", [(-5, 0), (0, 0), (9, 0), (10, 1), (34, 2), (35, 3), (1_000, 3)])
def test_sample_index_clamps(capture: Capture, ts: int, index: int) -> None:
    assert capture.sample_index(ts) == index


def test_value_at_holds_level_over_span(capture: Capture) -> None:
    assert capture.value_at(19) == 0b01
    assert capture.value_at(20) == 0b11
    assert capture.value_at(49) == 0b10


@pytest.mark.parametrize("index", [-1, 4, 100])
def test_out_of_range_index(capture: Capture, index: int) -> None:
    with pytest.raises(ToolError) as info:
        capture.timestamp(index)
    assert info.value.kind is ErrorKind.OUT_OF_RANGE


def test_sample_arrays_are_read_only(capture: Capture) -> None:
    with pytest.raises(ValueError):
        capture.values[0] = 7


def test_constructor_rejects_unordered_timestamps() -> None:
    with pytest.raises(ToolError) as info:
        Capture(np.array([0, 5, 5]), np.array([0, 1, 0]), SampleRateHz(0), [Channel(index=ChannelIndex(0))])
    assert info.value.kind is ErrorKind.INVALID_CONFIG


def test_builder_sorts_deduplicates_and_keeps_last_value() -> None:
    capture = (CaptureBuilder()
               .set_channel_count(1)
               .add_sample(30, 0)
               .add_sample(0, 1)
               .add_sample(10, 1)
               .add_sample(20, 0)
               .add_sample(20, 1)
               .build())

    # t=10 repeats t=0; t=20 resolves to 1 which also repeats
    assert capture.timestamps.tolist() == [0, 30]
    assert capture.values.tolist() == [1, 0]


def test_builder_deduplicates_under_enabled_mask() -> None:
    capture = (CaptureBuilder()
               .set_channel_count(2)
               .set_enabled_channels(0b01)
               .add_samples([(0, 0b00), (5, 0b10), (9, 0b11)])
               .build())

    assert capture.timestamps.tolist() == [0, 9]
    assert capture.enabled_channels == 0b01
    assert not capture.is_channel_enabled(1)


def test_builder_infers_channel_count() -> None:
    capture = CaptureBuilder().add_sample(0, 0b1001).build()
    assert capture.channel_count == 4


def test_builder_rejects_bad_configuration() -> None:
    with pytest.raises(ToolError):
        CaptureBuilder().set_channel_count(33)
    with pytest.raises(ToolError):
        CaptureBuilder().add_sample(-1, 0)
    with pytest.raises(ToolError):
        CaptureBuilder().set_sample_rate(-1)


def test_template_copies_metadata_cursors_and_annotations(capture: Capture) -> None:
    capture.cursors.set(0, 20, label="A")
    capture.annotations.add(SymbolAnnotation(channel=ChannelIndex(0), start=TimeStamp(10), end=TimeStamp(20), value=5))

    copy = (CaptureBuilder()
            .apply_template(capture, include_annotations=True)
            .add_channel(1, "Clock")
            .add_samples([(0, 0), (40, 1)])
            .build())

    assert copy.sample_rate == capture.sample_rate
    assert copy.absolute_length == 50
    assert copy.channel(1).label == "Clock"
    assert copy.cursors.get(0).timestamp == 20
    assert copy.cursors.get(0).label == "A"
    assert [a.value for a in copy.annotations.channel_annotations(0)] == [5]
    assert copy.bus is capture.bus


def test_label_prefers_decoder_label(capture: Capture) -> None:
    assert capture.label(0) == ""
    capture.annotations.add(LabelAnnotation(channel=ChannelIndex(0), label="RxD"))
    assert capture.label(0) == "RxD"
    assert capture.channel(1).display_name == "Channel 1"


def test_cursor_changes_are_published() -> None:
    bus = EventBus()
    events: list[Event] = []
    bus.subscribe(EventTopic.CURSOR_CHANGED, events.append)
    capture = CaptureBuilder().set_event_bus(bus).add_sample(0, 1).build()

    capture.cursors.set(3, 100, label="T")
    capture.cursors.clear(3)
    capture.cursors.clear_all()

    assert [e.payload["cursor"].timestamp for e in events] == [100, None]
    assert capture.cursors.defined() == []


def test_cursor_errors() -> None:
    capture = CaptureBuilder().add_sample(0, 1).build()

    with pytest.raises(ToolError) as info:
        capture.cursors.set(10, 5)
    assert info.value.kind is ErrorKind.OUT_OF_RANGE

    with pytest.raises(ToolError):
        capture.cursors.set(0, -1)
