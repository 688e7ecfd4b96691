# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, field_validator

from pylsa.config.system_config_settings import SystemConfigSettings
from pylsa.decoder.uart.config import BitOrder
from pylsa.lib.constants import MAX_CHANNELS
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.types import StringEnum


class ManchesterPolarity(StringEnum):
    IEEE_802_3  = "IEEE_802_3"      # rising mid-bit edge encodes 1
    G_E_THOMAS  = "G_E_THOMAS"      # rising mid-bit edge encodes 0

    @property
    def inverted(self) -> bool:
        return self is ManchesterPolarity.G_E_THOMAS


class ManchesterConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    data_index: StrictInt           = Field(..., ge=0, lt=MAX_CHANNELS, alias="dataIndex", description="Data line channel")
    symbol_size: StrictInt          = Field(default_factory=SystemConfigSettings.manchester_symbol_size,
                                            ge=1, le=32, alias="symbolSize", description="Bits per symbol")
    bit_order: BitOrder             = Field(default=BitOrder.MSB_FIRST, alias="bitOrder", description="Shift direction")
    polarity: ManchesterPolarity    = Field(default=ManchesterPolarity.IEEE_802_3, alias="polarity",
                                            description="Mid-bit edge convention")

    @field_validator("bit_order", "polarity", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> ManchesterConfig:
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Invalid Manchester configuration: {exc}") from exc

    @property
    def clock_index(self) -> int:
        """Channel receiving the synthesized clock: the data channel's lower neighbour, or channel 1."""
        return self.data_index - 1 if self.data_index >= 1 else self.data_index + 1
