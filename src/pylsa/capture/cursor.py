# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field

from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.event_bus import EventBus, EventTopic
from pylsa.lib.types import CursorId, TimeStamp

DEFAULT_CURSOR_COUNT: int = 10


class Cursor(BaseModel):
    """
    Labelled marker on the capture time axis.

    A cursor is created undefined and becomes defined once a timestamp is set.
    """
    model_config = ConfigDict(frozen=True)

    id: CursorId                    = Field(..., ge=0, description="Cursor slot")
    timestamp: TimeStamp | None     = Field(default=None, description="Position in sample ticks; None while undefined")
    label: str                      = Field(default="", description="User label")
    color: str                      = Field(default="#ffffff", description="Display color")

    @property
    def defined(self) -> bool:
        return self.timestamp is not None


class CursorSet:
    """
    The cursors attached to a capture.

    Cursors are the only mutable part of a capture; every definition or reset
    publishes a CURSOR_CHANGED event when an EventBus is attached.
    """

    def __init__(self, count: int = DEFAULT_CURSOR_COUNT, bus: EventBus | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._cursors: list[Cursor] = [Cursor(id=CursorId(i)) for i in range(count)]
        self.bus = bus

    def __len__(self) -> int:
        return len(self._cursors)

    def __iter__(self) -> Iterator[Cursor]:
        with self._lock:
            return iter(list(self._cursors))

    def get(self, cursor_id: int) -> Cursor:
        self._check(cursor_id)
        with self._lock:
            return self._cursors[cursor_id]

    def defined(self) -> list[Cursor]:
        with self._lock:
            return [c for c in self._cursors if c.defined]

    def set(self, cursor_id: int, timestamp: int, label: str | None = None, color: str | None = None) -> Cursor:
        self._check(cursor_id)
        if timestamp < 0:
            raise ToolError(ErrorKind.OUT_OF_RANGE, f"Cursor timestamp must be non-negative, got {timestamp}")

        with self._lock:
            current = self._cursors[cursor_id]
            update: dict[str, object] = {"timestamp": TimeStamp(timestamp)}
            if label is not None:
                update["label"] = label
            if color is not None:
                update["color"] = color
            cursor = current.model_copy(update=update)
            self._cursors[cursor_id] = cursor

        self._publish(cursor)
        return cursor

    def clear(self, cursor_id: int) -> Cursor:
        self._check(cursor_id)
        with self._lock:
            cursor = self._cursors[cursor_id].model_copy(update={"timestamp": None})
            self._cursors[cursor_id] = cursor
        self._publish(cursor)
        return cursor

    def clear_all(self) -> None:
        for i in range(len(self._cursors)):
            if self._cursors[i].defined:
                self.clear(i)

    def _check(self, cursor_id: int) -> None:
        if not 0 <= cursor_id < len(self._cursors):
            raise ToolError(ErrorKind.OUT_OF_RANGE, f"Cursor id {cursor_id} outside [0, {len(self._cursors)})")

    def _publish(self, cursor: Cursor) -> None:
        self.logger.debug(f"Cursor {cursor.id} -> {cursor.timestamp}")
        if self.bus is not None:
            self.bus.publish(EventTopic.CURSOR_CHANGED, cursor=cursor)
