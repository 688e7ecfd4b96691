# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from collections.abc import Mapping
from fractions import Fraction
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    field_validator,
    model_validator,
)

from pylsa.lib.constants import AUTO_BAUD_RATE, DISABLED_CHANNEL, MAX_CHANNELS
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.types import FloatEnum, StringEnum


class StopBits(FloatEnum):
    ONE         = 1.0
    ONE_HALF    = 1.5
    TWO         = 2.0


class Parity(StringEnum):
    NONE    = "NONE"
    ODD     = "ODD"
    EVEN    = "EVEN"
    MARK    = "MARK"
    SPACE   = "SPACE"


class BitEncoding(StringEnum):
    HIGH_IS_ONE     = "HIGH_IS_ONE"
    HIGH_IS_ZERO    = "HIGH_IS_ZERO"


class BitOrder(StringEnum):
    LSB_FIRST   = "LSB_FIRST"
    MSB_FIRST   = "MSB_FIRST"


class BitLevel(StringEnum):
    HIGH    = "HIGH"
    LOW     = "LOW"

    @property
    def bit(self) -> int:
        return 1 if self is BitLevel.HIGH else 0


class UartLine(StringEnum):
    RXD = "RxD"
    TXD = "TxD"
    CTS = "CTS"
    RTS = "RTS"
    DCD = "DCD"
    RI  = "RI"
    DSR = "DSR"
    DTR = "DTR"

    @property
    def is_data(self) -> bool:
        return self in (UartLine.RXD, UartLine.TXD)


class SerialConfiguration(BaseModel):
    """Frame format of one asynchronous serial line."""
    model_config = ConfigDict(frozen=True)

    baud_rate: int              = Field(..., gt=0, description="Bits per second")
    bit_count: int              = Field(default=8, ge=5, le=9, description="Data bits per symbol")
    stop_bits: StopBits         = Field(default=StopBits.ONE, description="Stop-bit count")
    parity: Parity              = Field(default=Parity.NONE, description="Parity mode")
    bit_encoding: BitEncoding   = Field(default=BitEncoding.HIGH_IS_ONE, description="Logic polarity")
    bit_order: BitOrder         = Field(default=BitOrder.LSB_FIRST, description="Shift direction")
    idle_level: BitLevel        = Field(default=BitLevel.HIGH, description="Quiescent line level")

    def bit_length(self, sample_rate: int) -> Fraction:
        """Sample ticks per bit, kept exact."""
        return Fraction(sample_rate, self.baud_rate)

    @property
    def parity_bits(self) -> int:
        return 0 if self.parity is Parity.NONE else 1

    @property
    def total_bits(self) -> Fraction:
        """Start + data + parity + stop bits."""
        return 1 + self.bit_count + self.parity_bits + Fraction(str(self.stop_bits.value))


class UartConfig(BaseModel):
    """
    Options of the UART analyser.

    ``baud_rate`` holds AUTO_BAUD_RATE (any negative value, or the string
    ``"AUTO"``) to request auto-detection per data line. Channel indices of -1
    disable the corresponding line; enabled lines must use distinct channels.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    baud_rate: StrictInt        = Field(default=AUTO_BAUD_RATE, alias="baudRate", description="Nominal baud rate or AUTO")
    bit_count: StrictInt        = Field(default=8, ge=5, le=9, alias="bitCount", description="Data bits per symbol")
    stop_bits: StopBits         = Field(default=StopBits.ONE, alias="stopBits", description="Stop-bit count")
    parity: Parity              = Field(default=Parity.NONE, alias="parity", description="Parity mode")
    bit_encoding: BitEncoding   = Field(default=BitEncoding.HIGH_IS_ONE, alias="bitEncoding", description="Logic polarity")
    bit_order: BitOrder         = Field(default=BitOrder.LSB_FIRST, alias="bitOrder", description="Shift direction")
    idle_level: BitLevel        = Field(default=BitLevel.HIGH, alias="idleLevel", description="Quiescent line level")

    rxd_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="rxdIndex")
    txd_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="txdIndex")
    cts_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="ctsIndex")
    rts_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="rtsIndex")
    dcd_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="dcdIndex")
    ri_index: StrictInt         = Field(default=DISABLED_CHANNEL, alias="riIndex")
    dsr_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="dsrIndex")
    dtr_index: StrictInt        = Field(default=DISABLED_CHANNEL, alias="dtrIndex")

    @field_validator("baud_rate", mode="before")
    @classmethod
    def _auto_baud(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().upper() == "AUTO":
            return AUTO_BAUD_RATE
        return v

    @field_validator("baud_rate")
    @classmethod
    def _check_baud(cls, v: int) -> int:
        if v == 0:
            raise ValueError("baudRate must be positive or AUTO")
        return AUTO_BAUD_RATE if v < 0 else v

    @field_validator("stop_bits", mode="before")
    @classmethod
    def _parse_stop_bits(cls, v: Any) -> Any:
        if isinstance(v, (StopBits, bool)):
            return v
        if isinstance(v, str):
            text = v.strip().upper()
            if text in StopBits.__members__:
                return StopBits[text]
            try:
                v = float(text)
            except ValueError:
                return v
        if isinstance(v, (int, float)):
            for member in StopBits:
                if member.value == float(v):
                    return member
        return v

    @field_validator("parity", "bit_encoding", "bit_order", "idle_level", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("rxd_index", "txd_index", "cts_index", "rts_index",
                     "dcd_index", "ri_index", "dsr_index", "dtr_index")
    @classmethod
    def _check_index(cls, v: int) -> int:
        if v != DISABLED_CHANNEL and not 0 <= v < MAX_CHANNELS:
            raise ValueError(f"channel index must be -1 or within 0..{MAX_CHANNELS - 1}")
        return v

    @model_validator(mode="after")
    def _check_lines(self) -> UartConfig:
        used = [idx for _, idx in self.lines()]
        if not used:
            raise ValueError("at least one line index must be configured")
        if len(set(used)) != len(used):
            raise ValueError(f"line indices must be distinct, got {used}")
        return self

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> UartConfig:
        """Build from a string-keyed mapping; raises ToolError(INVALID_CONFIG) on bad input."""
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Invalid UART configuration: {exc}") from exc

    @property
    def is_auto_baud(self) -> bool:
        return self.baud_rate == AUTO_BAUD_RATE

    def lines(self) -> list[tuple[UartLine, int]]:
        """Enabled lines in decoding order: data lines first, then control lines."""
        pairs = [
            (UartLine.RXD, self.rxd_index),
            (UartLine.TXD, self.txd_index),
            (UartLine.CTS, self.cts_index),
            (UartLine.RTS, self.rts_index),
            (UartLine.DCD, self.dcd_index),
            (UartLine.RI,  self.ri_index),
            (UartLine.DSR, self.dsr_index),
            (UartLine.DTR, self.dtr_index),
        ]
        return [(line, idx) for line, idx in pairs if idx != DISABLED_CHANNEL]

    def data_lines(self) -> list[tuple[UartLine, int]]:
        return [(line, idx) for line, idx in self.lines() if line.is_data]

    def control_lines(self) -> list[tuple[UartLine, int]]:
        return [(line, idx) for line, idx in self.lines() if not line.is_data]

    @property
    def mask(self) -> int:
        result = 0
        for _, idx in self.lines():
            result |= 1 << idx
        return result

    def serial_configuration(self, baud_rate: int) -> SerialConfiguration:
        return SerialConfiguration(
            baud_rate       =   baud_rate,
            bit_count       =   self.bit_count,
            stop_bits       =   self.stop_bits,
            parity          =   self.parity,
            bit_encoding    =   self.bit_encoding,
            bit_order       =   self.bit_order,
            idle_level      =   self.idle_level,
        )
