# tests/test_edge_scanner.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import pytest

from pylsa.capture.builder import CaptureBuilder
from pylsa.capture.capture import Capture
from pylsa.capture.edge import Edge, EdgeScanner
from pylsa.lib.errors import ErrorKind, ToolError


@pytest.fixture()
def scanner() -> EdgeScanner:
    # ch0: 1 until 10, 0 until 30, 1 from 30; ch1: rises at 20
    capture = (CaptureBuilder()
               .set_channel_count(2)
               .add_samples([(5, 0b01), (10, 0b00), (20, 0b10), (30, 0b11)])
               .set_absolute_length(40)
               .build())
    return EdgeScanner(capture)


def test_edge_classification() -> None:
    assert Edge.between(0b00, 0b01, 0b01) is Edge.RISING
    assert Edge.between(0b11, 0b10, 0b01) is Edge.FALLING
    assert Edge.between(0b10, 0b00, 0b01) is Edge.NONE
    assert Edge.RISING.is_rising and Edge.FALLING.is_falling


def test_level(scanner: EdgeScanner) -> None:
    assert scanner.level(0, 0) == 1
    assert scanner.level(0, 15) == 0
    assert scanner.level(1, 25) == 1


@pytest.mark.parametrize("ts, expected", [(0, 10), (9, 10), (10, 30), (29, 30)])
def test_edge_after(scanner: EdgeScanner, ts: int, expected: int) -> None:
    assert scanner.edge_after(0, ts) == expected


@pytest.mark.parametrize("ts, expected", [(10, 10), (29, 10), (30, 30), (39, 30)])
def test_edge_before(scanner: EdgeScanner, ts: int, expected: int) -> None:
    assert scanner.edge_before(0, ts) == expected


def test_missing_edges_return_first_timestamp_sentinel(scanner: EdgeScanner) -> None:
    assert scanner.edge_after(0, 30) == 5
    assert scanner.edge_before(0, 9) == 5
    assert scanner.try_edge_after(0, 30) is None
    assert scanner.try_edge_before(0, 9) is None
    assert scanner.try_edge_before(0, 0) is None


def test_edges_enumerates_half_open_window(scanner: EdgeScanner) -> None:
    assert list(scanner.edges(0, 0, 40)) == [(10, 0), (30, 1)]
    assert list(scanner.edges(0, 10, 30)) == [(30, 1)]
    assert list(scanner.edges(1, 0, 19)) == []
    assert list(scanner.edges(0, 30, 10)) == []


def test_transitions(scanner: EdgeScanner) -> None:
    initial, stamps, levels = scanner.transitions(0)
    assert initial == 1
    assert stamps.tolist() == [10, 30]
    assert levels.tolist() == [0, 1]

    initial, stamps, levels = scanner.transitions(0, 10, 40)
    assert initial == 0
    assert stamps.tolist() == [30]


def test_channel_out_of_range(scanner: EdgeScanner) -> None:
    with pytest.raises(ToolError) as info:
        scanner.edge_after(32, 0)
    assert info.value.kind is ErrorKind.OUT_OF_RANGE


def test_long_runs_cross_chunk_boundaries() -> None:
    builder = CaptureBuilder().set_channel_count(2)
    # Channel 1 toggles every sample so nothing is deduplicated; channel 0 changes once
    for i in range(5_000):
        builder.add_sample(i, ((i & 1) << 1) | (1 if i >= 4_321 else 0))
    capture: Capture = builder.build()
    scanner = EdgeScanner(capture)

    assert scanner.edge_after(0, 0) == 4_321
    assert scanner.edge_before(0, 4_999) == 4_321
    assert list(scanner.edges(0, 0, 4_999)) == [(4_321, 1)]
