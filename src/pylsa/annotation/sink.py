# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import bisect
import heapq
import itertools
import logging
import threading
from collections.abc import Iterable, Iterator
from typing import Any

from pylsa.annotation.model import (
    Annotation,
    ErrorAnnotation,
    LabelAnnotation,
    MetadataAnnotation,
    SymbolAnnotation,
    TimedAnnotation,
)
from pylsa.lib.event_bus import EventBus, EventTopic

_Entry = tuple[int, int, TimedAnnotation]


class AnnotationSink:
    """
    Typed store of decoded annotations.

    Symbol and error annotations live in one queue per channel, ordered by
    start timestamp with insertion order breaking ties. Channel labels are kept
    separately (one per channel) and metadata goes to a single global queue.

    Readers always receive snapshot copies taken under the sink lock.
    """

    def __init__(self, bus: EventBus | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.bus = bus
        self._lock = threading.RLock()
        self._seq = itertools.count()
        self._channels: dict[int, list[_Entry]] = {}
        self._labels: dict[int, LabelAnnotation] = {}
        self._metadata: list[MetadataAnnotation] = []

    def add(self, annotation: Annotation) -> None:
        with self._lock:
            if isinstance(annotation, LabelAnnotation):
                self._labels[annotation.channel] = annotation
            elif isinstance(annotation, MetadataAnnotation):
                self._metadata.append(annotation)
            elif isinstance(annotation, (SymbolAnnotation, ErrorAnnotation)):
                entry = (annotation.start, next(self._seq), annotation)
                queue = self._channels.setdefault(annotation.channel, [])
                if not queue or queue[-1][:2] <= entry[:2]:
                    queue.append(entry)
                else:
                    bisect.insort(queue, entry, key=lambda e: (e[0], e[1]))
            else:
                raise TypeError(f"Unsupported annotation type: {type(annotation).__name__}")

        self._publish(annotation.channel)

    def add_all(self, annotations: Iterable[Annotation]) -> None:
        for annotation in annotations:
            self.add(annotation)

    def clear(self, channel: int) -> None:
        """Remove every annotation of ``channel``; clearing an empty channel is a no-op."""
        with self._lock:
            removed = self._channels.pop(channel, None) is not None
            removed |= self._labels.pop(channel, None) is not None
            kept = [m for m in self._metadata if m.channel != channel]
            removed |= len(kept) != len(self._metadata)
            self._metadata = kept

        if removed:
            self.logger.debug(f"Cleared annotations of channel {channel}")
            self._publish(channel)

    def clear_all(self) -> None:
        with self._lock:
            was_empty = not (self._channels or self._labels or self._metadata)
            self._channels.clear()
            self._labels.clear()
            self._metadata.clear()

        if not was_empty:
            self._publish(None)

    def channels(self) -> list[int]:
        """Channels that hold at least one timed annotation, ascending."""
        with self._lock:
            return sorted(ch for ch, q in self._channels.items() if q)

    def channel_annotations(self, channel: int) -> list[TimedAnnotation]:
        with self._lock:
            return [e[2] for e in self._channels.get(channel, [])]

    def label(self, channel: int) -> str | None:
        with self._lock:
            ann = self._labels.get(channel)
            return ann.label if ann is not None else None

    def labels(self) -> dict[int, str]:
        with self._lock:
            return {ch: ann.label for ch, ann in sorted(self._labels.items())}

    def metadata(self) -> list[MetadataAnnotation]:
        with self._lock:
            return list(self._metadata)

    def iter_channel_ordered(self) -> Iterator[TimedAnnotation]:
        """Channel by channel (ascending), each in time order."""
        with self._lock:
            snapshot = [list(self._channels[ch]) for ch in sorted(self._channels)]
        for queue in snapshot:
            for entry in queue:
                yield entry[2]

    def iter_time_ordered(self) -> Iterator[TimedAnnotation]:
        """Stable merge of all channels by start timestamp."""
        with self._lock:
            snapshot = [list(q) for q in self._channels.values()]
        for entry in heapq.merge(*snapshot, key=lambda e: (e[0], e[1])):
            yield entry[2]

    def records(self) -> list[dict[str, Any]]:
        """Labels, then metadata, then timed annotations in channel order, as flat records."""
        with self._lock:
            labels = list(self._labels.values())
            metadata = list(self._metadata)
        out = [a.to_record() for a in labels]
        out.extend(m.to_record() for m in metadata)
        out.extend(a.to_record() for a in self.iter_channel_ordered())
        return out

    def copy_from(self, other: AnnotationSink) -> None:
        """Append every annotation held by ``other``, preserving its per-channel order."""
        with other._lock:
            labels = list(other._labels.values())
            metadata = list(other._metadata)
            timed = [e[2] for e in heapq.merge(*[list(q) for q in other._channels.values()],
                                               key=lambda e: (e[0], e[1]))]
        self.add_all(labels)
        self.add_all(metadata)
        self.add_all(timed)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(q) for q in self._channels.values()) + len(self._labels) + len(self._metadata)

    def _publish(self, channel: int | None) -> None:
        if self.bus is not None:
            self.bus.publish(EventTopic.ANNOTATIONS_CHANGED, channel=channel)
