# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pylsa.lib.types import StringEnum


class EventTopic(StringEnum):
    PROGRESS                  = "progress"
    RUN_STATE                 = "run_state"
    AUTO_BAUD_FAILED          = "auto_baud_failed"
    CURSOR_CHANGED            = "cursor_changed"
    ANNOTATIONS_CHANGED       = "annotations_changed"
    CLOCK_CHANNEL_OVERWRITTEN = "clock_channel_overwritten"


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    topic: EventTopic           = Field(..., description="Topic the event was published on")
    payload: dict[str, Any]     = Field(default_factory=dict, description="Topic specific fields")


EventCallback = Callable[[Event], None]


class Subscription:
    """Handle returned by EventBus.subscribe(); cancel() removes the callback."""

    def __init__(self, bus: EventBus, topic: EventTopic, callback: EventCallback) -> None:
        self._bus = bus
        self.topic = topic
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._bus._remove(self)
            self._active = False


class EventBus:
    """
    Typed publish/subscribe hub replacing per-concern listener lists.

    Subscribers register interest in one topic and receive immutable Event
    objects. Callbacks run on the publishing thread; a failing callback is
    logged and does not prevent delivery to the remaining subscribers.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._subscribers: dict[EventTopic, list[Subscription]] = {}

    def subscribe(self, topic: EventTopic, callback: EventCallback) -> Subscription:
        sub = Subscription(self, topic, callback)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.topic, [])
            if sub in subs:
                subs.remove(sub)

    def subscriber_count(self, topic: EventTopic) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: EventTopic, **payload: Any) -> Event:
        event = Event(topic=topic, payload=payload)
        with self._lock:
            subs = list(self._subscribers.get(topic, []))

        for sub in subs:
            try:
                sub.callback(event)
            except Exception as exc:
                self.logger.error(f"Subscriber failed on topic={topic.value}, reason={exc}", exc_info=True)

        return event
