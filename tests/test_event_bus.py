# tests/test_event_bus.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging

import pytest

from pylsa.lib.event_bus import Event, EventBus, EventTopic


def test_publish_reaches_topic_subscribers_only() -> None:
    bus = EventBus()
    progress: list[Event] = []
    states: list[Event] = []
    bus.subscribe(EventTopic.PROGRESS, progress.append)
    bus.subscribe(EventTopic.RUN_STATE, states.append)

    event = bus.publish(EventTopic.PROGRESS, percent=40)

    assert progress == [event]
    assert states == []
    assert event.payload == {"percent": 40}
    assert event.topic is EventTopic.PROGRESS


def test_cancelled_subscription_stops_delivery() -> None:
    bus = EventBus()
    seen: list[int] = []
    sub = bus.subscribe(EventTopic.AUTO_BAUD_FAILED, lambda e: seen.append(e.payload["channel"]))

    bus.publish(EventTopic.AUTO_BAUD_FAILED, channel=1)
    sub.cancel()
    sub.cancel()
    bus.publish(EventTopic.AUTO_BAUD_FAILED, channel=2)

    assert seen == [1]
    assert not sub.active
    assert bus.subscriber_count(EventTopic.AUTO_BAUD_FAILED) == 0


def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    seen: list[Event] = []

    def broken(_: Event) -> None:
        raise RuntimeError("boom")

    bus.subscribe(EventTopic.CURSOR_CHANGED, broken)
    bus.subscribe(EventTopic.CURSOR_CHANGED, seen.append)

    with caplog.at_level(logging.ERROR, logger="EventBus"):
        bus.publish(EventTopic.CURSOR_CHANGED, cursor=None)

    assert len(seen) == 1
    assert "boom" in caplog.text
