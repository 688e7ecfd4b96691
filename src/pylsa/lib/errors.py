# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from pylsa.lib.types import StringEnum

T = TypeVar("T")


class ErrorKind(StringEnum):
    """
    Closed set of error kinds surfaced by the decoding core.

    FRAME, PARITY and START are per-symbol protocol errors; they are reported
    as error annotations and never raised.
    """
    OUT_OF_RANGE    = "OUT_OF_RANGE"
    INVALID_CONFIG  = "INVALID_CONFIG"
    NO_SIGNAL       = "NO_SIGNAL"
    RANGE_EMPTY     = "RANGE_EMPTY"
    FRAME           = "FRAME"
    PARITY          = "PARITY"
    START           = "START"
    CANCELLED       = "CANCELLED"
    ALREADY_RUNNING = "ALREADY_RUNNING"
    NOT_RUNNING     = "NOT_RUNNING"


class ToolError(Exception):
    """Error raised by capture accessors, configuration parsing, decoders and the runner."""

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value}, message={self.message!r})"


class ToolCancelledError(ToolError):
    """Raised inside a decoder once the cancellation flag has been observed."""

    def __init__(self, message: str = "Decoding cancelled") -> None:
        super().__init__(ErrorKind.CANCELLED, message)


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """
    Outcome of a tool run: either a value or a ToolError, never both.
    """
    value: T | None = None
    error: ToolError | None = None

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(value=value, error=None)

    @classmethod
    def fail(cls, error: ToolError) -> Result[T]:
        return cls(value=None, error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value or re-raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
