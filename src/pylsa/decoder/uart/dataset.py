# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from pydantic import BaseModel, Field

from pylsa.lib.errors import ErrorKind
from pylsa.lib.types import SampleIndex, StringEnum


class UartEventType(StringEnum):
    RX_DATA     = "RX_DATA"
    TX_DATA     = "TX_DATA"
    RX_EVENT    = "RX_EVENT"
    TX_EVENT    = "TX_EVENT"
    EVENT       = "EVENT"

    @property
    def is_data(self) -> bool:
        return self in (UartEventType.RX_DATA, UartEventType.TX_DATA)

    def as_event(self) -> UartEventType:
        """The error/event counterpart of a data type."""
        if self is UartEventType.RX_DATA:
            return UartEventType.RX_EVENT
        if self is UartEventType.TX_DATA:
            return UartEventType.TX_EVENT
        return self


class UartData(BaseModel):
    channel: int                = Field(..., description="Channel index")
    start_index: SampleIndex    = Field(..., description="First sample of the symbol or event")
    end_index: SampleIndex      = Field(..., description="Last sample of the symbol or event")
    event_type: UartEventType   = Field(..., description="Data direction or event class")
    value: int | None           = Field(default=None, description="Decoded symbol; None for events")
    event: str | None           = Field(default=None, description="Event name, e.g. CTS_HIGH or FRAME")

    @property
    def is_event(self) -> bool:
        return not self.event_type.is_data


class UartDataSet(BaseModel):
    """Result of one UART analysis run."""
    start_of_decode: SampleIndex    = Field(..., description="First decoded sample")
    end_of_decode: SampleIndex      = Field(..., description="Last decoded sample")
    sample_rate: int                = Field(..., description="Capture sample rate in Hz")
    entries: list[UartData]         = Field(default_factory=list)
    baud_rate: int                  = Field(default=0, description="Nominal (snapped) baud rate of the last decoded data line")
    sampled_bit_length: float       = Field(default=0.0, description="Bit length, in ticks, of the last decoded data line")
    line_baud_rates: dict[int, int] = Field(default_factory=dict, description="Nominal baud rate per decoded data channel")
    line_bit_lengths: dict[int, float] = Field(default_factory=dict, description="Bit length, in ticks, per decoded data channel")
    frame_errors: int               = Field(default=0)
    parity_errors: int              = Field(default=0)
    start_errors: int               = Field(default=0)
    detected_errors: int            = Field(default=0)
    failed_channels: list[int]      = Field(default_factory=list, description="Data lines whose baud rate could not be determined")

    @property
    def effective_baud_rate(self) -> int:
        """Baud rate implied by the bit length used for decoding."""
        if self.sampled_bit_length <= 0:
            return 0
        return int(round(self.sample_rate / self.sampled_bit_length))

    @property
    def symbols(self) -> list[UartData]:
        return [e for e in self.entries if not e.is_event]

    @property
    def events(self) -> list[UartData]:
        return [e for e in self.entries if e.is_event]

    def report_data(self, channel: int, start: int, end: int, value: int, event_type: UartEventType) -> None:
        self.entries.append(UartData(channel=channel, start_index=SampleIndex(start), end_index=SampleIndex(end),
                                     event_type=event_type, value=value))

    def report_error(self, kind: ErrorKind, channel: int, index: int, event_type: UartEventType) -> None:
        if kind is ErrorKind.FRAME:
            self.frame_errors += 1
        elif kind is ErrorKind.PARITY:
            self.parity_errors += 1
        elif kind is ErrorKind.START:
            self.start_errors += 1
        self.detected_errors += 1
        self.entries.append(UartData(channel=channel, start_index=SampleIndex(index), end_index=SampleIndex(index),
                                     event_type=event_type.as_event(), event=kind.value))

    def report_control(self, channel: int, index: int, name: str, high: bool) -> None:
        self.entries.append(UartData(channel=channel, start_index=SampleIndex(index), end_index=SampleIndex(index),
                                     event_type=UartEventType.EVENT, event=f"{name}_{'HIGH' if high else 'LOW'}"))

    def sort(self) -> None:
        self.entries.sort(key=lambda e: (e.start_index, e.channel))
