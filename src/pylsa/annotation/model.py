# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pylsa.lib.constants import (
    COLOR_FRAME_ERROR,
    COLOR_PARITY_ERROR,
    COLOR_START_ERROR,
    KEY_COLOR,
    KEY_TEXT,
)
from pylsa.lib.errors import ErrorKind
from pylsa.lib.types import ChannelIndex, StringEnum, TimeStamp


class AnnotationKind(StringEnum):
    LABEL       = "label"
    SYMBOL      = "symbol"
    ERROR       = "error"
    METADATA    = "metadata"


class AnnotationRecord(BaseModel):
    """Flat, serializable view of one annotation."""
    model_config = ConfigDict(populate_by_name=True)

    channel: int | None         = Field(..., description="Channel index, None for capture-wide metadata")
    start_ts: int               = Field(..., alias="startTs", description="First sample tick covered")
    end_ts: int                 = Field(..., alias="endTs", description="Last sample tick covered")
    kind_tag: AnnotationKind    = Field(..., alias="kindTag", description="Annotation variant")
    payload: Any                = Field(default=None, description="Decoded value, label text or metadata map")
    properties: dict[str, Any]  = Field(default_factory=dict, description="Auxiliary string-keyed values")


class Annotation(BaseModel):
    """Base of every annotation variant; annotations are immutable once created."""
    model_config = ConfigDict(frozen=True)

    kind: ClassVar[AnnotationKind]

    channel: ChannelIndex | None = Field(default=None, description="Channel the annotation refers to")

    @property
    def start_ts(self) -> TimeStamp:
        return TimeStamp(0)

    @property
    def end_ts(self) -> TimeStamp:
        return self.start_ts

    def _payload(self) -> Any:
        return None

    def _properties(self) -> dict[str, Any]:
        return {}

    def to_record(self) -> dict[str, Any]:
        record = AnnotationRecord(
            channel     =   self.channel,
            startTs     =   self.start_ts,
            endTs       =   self.end_ts,
            kindTag     =   self.kind,
            payload     =   self._payload(),
            properties  =   self._properties(),
        )
        return record.model_dump(by_alias=True, mode="json")


class LabelAnnotation(Annotation):
    """Sets the display label of a channel; last writer wins."""
    kind: ClassVar[AnnotationKind] = AnnotationKind.LABEL

    channel: ChannelIndex   = Field(..., ge=0, description="Labelled channel")
    label: str              = Field(..., description="Display label")

    def _payload(self) -> Any:
        return self.label


class _TimedAnnotation(Annotation):
    channel: ChannelIndex   = Field(..., ge=0, description="Channel the datum was decoded from")
    start: TimeStamp        = Field(..., ge=0, description="Start of the covered span in sample ticks")
    end: TimeStamp          = Field(..., ge=0, description="End of the covered span in sample ticks")

    @model_validator(mode="after")
    def _check_span(self) -> _TimedAnnotation:
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) precedes start ({self.start})")
        return self

    @property
    def start_ts(self) -> TimeStamp:
        return self.start

    @property
    def end_ts(self) -> TimeStamp:
        return self.end


class SymbolAnnotation(_TimedAnnotation):
    """A decoded symbol or protocol event spanning [start, end]."""
    kind: ClassVar[AnnotationKind] = AnnotationKind.SYMBOL

    value: int                  = Field(..., description="Decoded payload")
    properties: dict[str, Any]  = Field(default_factory=dict, description="color, type, eventType, text, ...")

    @property
    def text(self) -> str | None:
        text = self.properties.get(KEY_TEXT)
        return str(text) if text is not None else None

    def _payload(self) -> Any:
        return self.value

    def _properties(self) -> dict[str, Any]:
        return dict(self.properties)


_ERROR_COLORS: dict[ErrorKind, str] = {
    ErrorKind.FRAME:    COLOR_FRAME_ERROR,
    ErrorKind.PARITY:   COLOR_PARITY_ERROR,
    ErrorKind.START:    COLOR_START_ERROR,
}


class ErrorAnnotation(_TimedAnnotation):
    """A per-symbol protocol error (FRAME, PARITY or START)."""
    kind: ClassVar[AnnotationKind] = AnnotationKind.ERROR

    error: ErrorKind        = Field(..., description="Protocol error kind")
    color: str              = Field(default="", description="Display color; defaults per error kind")

    @field_validator("error")
    @classmethod
    def _protocol_error_only(cls, v: ErrorKind) -> ErrorKind:
        if v not in _ERROR_COLORS:
            raise ValueError(f"{v.value} is not a protocol error kind")
        return v

    @model_validator(mode="after")
    def _default_color(self) -> ErrorAnnotation:
        if not self.color:
            object.__setattr__(self, "color", _ERROR_COLORS[self.error])
        return self

    def _payload(self) -> Any:
        return self.error.value

    def _properties(self) -> dict[str, Any]:
        return {KEY_COLOR: self.color}


class MetadataAnnotation(Annotation):
    """
    Capture-wide report, e.g. the baud-rate measurement of a serial line.

    Metadata is kept on the sink's global queue; ``channel`` only records
    which line the report describes.
    """
    kind: ClassVar[AnnotationKind] = AnnotationKind.METADATA

    text: str               = Field(default="", description="Human readable summary")
    data: dict[str, Any]    = Field(default_factory=dict, description="Measured values")

    def _payload(self) -> Any:
        return dict(self.data)

    def _properties(self) -> dict[str, Any]:
        return {KEY_TEXT: self.text} if self.text else {}


TimedAnnotation = SymbolAnnotation | ErrorAnnotation
