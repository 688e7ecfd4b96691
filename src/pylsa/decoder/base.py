# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pylsa.annotation.model import LabelAnnotation
from pylsa.annotation.sink import AnnotationSink
from pylsa.capture.capture import Capture
from pylsa.capture.cursor import Cursor
from pylsa.capture.edge import EdgeScanner
from pylsa.config.system_config_settings import SystemConfigSettings
from pylsa.lib.errors import ErrorKind, ToolCancelledError, ToolError
from pylsa.lib.event_bus import EventBus
from pylsa.lib.types import ChannelIndex, SampleIndex, TimeStamp

D = TypeVar("D")

ProgressCallback = Callable[[int], None]


class ToolContext(BaseModel):
    """
    The decoding area handed to a decoder: a capture plus an inclusive
    sample-index range ``[start_index, end_index]``.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    capture: Capture        = Field(..., description="Capture to decode")
    start_index: SampleIndex = Field(..., ge=0, description="First sample of the decoding area")
    end_index: SampleIndex  = Field(..., ge=0, description="Last sample of the decoding area (inclusive)")

    @model_validator(mode="after")
    def _check_range(self) -> ToolContext:
        if self.capture.size == 0 or self.end_index < self.start_index or self.end_index >= self.capture.size:
            raise ToolError(ErrorKind.RANGE_EMPTY,
                            f"Decoding area [{self.start_index}, {self.end_index}] holds no samples "
                            f"of a {self.capture.size}-sample capture")
        return self

    @classmethod
    def from_capture(cls, capture: Capture) -> ToolContext:
        """Decode the whole capture."""
        if capture.size == 0:
            raise ToolError(ErrorKind.RANGE_EMPTY, "Capture holds no samples")
        return cls(capture=capture, start_index=SampleIndex(0), end_index=SampleIndex(capture.size - 1))

    @classmethod
    def from_timestamps(cls, capture: Capture, t0: int, t1: int) -> ToolContext:
        if capture.size == 0:
            raise ToolError(ErrorKind.RANGE_EMPTY, "Capture holds no samples")
        lo, hi = sorted((t0, t1))
        return cls(capture=capture, start_index=capture.sample_index(lo), end_index=capture.sample_index(hi))

    @classmethod
    def from_cursors(cls, capture: Capture, cursor_a: Cursor, cursor_b: Cursor) -> ToolContext:
        """Decoding area between two defined cursors, in either order."""
        if not (cursor_a.defined and cursor_b.defined):
            raise ToolError(ErrorKind.INVALID_CONFIG, "Both cursors must be defined to bound the decoding area")
        return cls.from_timestamps(capture, cursor_a.timestamp or 0, cursor_b.timestamp or 0)

    @property
    def start_ts(self) -> TimeStamp:
        return self.capture.timestamp(self.start_index)

    @property
    def end_ts(self) -> TimeStamp:
        """Last tick of the area; the final capture span extends to the absolute length."""
        if self.end_index == self.capture.size - 1:
            return self.capture.absolute_length
        return self.capture.timestamp(self.end_index)

    @property
    def annotations(self) -> AnnotationSink:
        return self.capture.annotations

    @property
    def bus(self) -> EventBus:
        return self.capture.bus


class ProgressMonitor:
    """
    Cancellation flag plus a monotone percent counter.

    ``set_progress`` never lowers the reported value and polls the
    cancellation flag, raising ToolCancelledError once it is set.
    """

    def __init__(self,
                 cancel_event: threading.Event | None = None,
                 callback: ProgressCallback | None = None,
                 yield_interval: int | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self._cancel = cancel_event if cancel_event is not None else threading.Event()
        self._callback = callback
        self._percent = 0
        self._stage = 0
        self._stages = 1
        self.yield_interval = yield_interval or SystemConfigSettings.yield_interval()

    @property
    def percent(self) -> int:
        return self._percent

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise ToolCancelledError()

    def due(self, count: int) -> bool:
        """True every ``yield_interval`` iterations, when progress should be reported."""
        return count % self.yield_interval == 0

    def begin_stage(self, index: int, count: int) -> None:
        """Map subsequent 0..100 reports onto stage ``index`` of ``count`` equal stages."""
        self._stage = max(0, index)
        self._stages = max(1, count)

    def set_progress(self, percent: int) -> None:
        self.check_cancelled()
        local = min(100, max(0, int(percent)))
        value = min(100, (self._stage * 100 + local) // self._stages)
        if value > self._percent:
            self._percent = value
            if self._callback is not None:
                self._callback(value)

    def set_position(self, position: int, start: int, end: int) -> None:
        """Report progress as the position of ``position`` within ``[start, end]``."""
        if end <= start:
            self.set_progress(100)
            return
        self.set_progress(((position - start) * 100) // (end - start))

    def finish(self) -> None:
        self._stage, self._stages = 0, 1
        self.set_progress(100)


class DecoderTask(ABC, Generic[D]):
    """
    Base of the protocol decoders.

    A task decodes one ToolContext, writing annotations into the capture's
    sink and returning a data set. Configuration is validated before anything
    is written; the runner injects the progress monitor.
    """
    name: ClassVar[str] = "decoder"

    def __init__(self, context: ToolContext, monitor: ProgressMonitor | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.context = context
        self.monitor = monitor if monitor is not None else ProgressMonitor()
        self.scanner = EdgeScanner(context.capture)

    @property
    def capture(self) -> Capture:
        return self.context.capture

    @property
    def annotations(self) -> AnnotationSink:
        return self.context.annotations

    def bind(self, monitor: ProgressMonitor) -> None:
        self.monitor = monitor

    def prepare_channel(self, channel: int, label: str) -> None:
        """Clear previous annotations of ``channel`` and label it."""
        self.annotations.clear(channel)
        self.annotations.add(LabelAnnotation(channel=ChannelIndex(channel), label=label))

    @abstractmethod
    def decode(self) -> D:
        """Run the decoder; raises ToolError on configuration or signal problems."""
        ...
