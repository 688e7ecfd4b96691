# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError, model_validator

from pylsa.lib.errors import ErrorKind, ToolError

# The IDA bus occupies channels 0..15; control lines live in the upper half
CONTROL_FIRST: int = 16
CONTROL_LAST: int = 31


class Asm45Config(BaseModel):
    """Channel assignment of the HP9845 hybrid-processor bus control lines."""
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    sync_index: StrictInt           = Field(default=22, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="syncIndex")
    wrt_index: StrictInt            = Field(default=23, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="wrtIndex")
    bl_index: StrictInt             = Field(default=24, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="blIndex")
    byte_index: StrictInt           = Field(default=25, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="byteIndex")
    ebg_index: StrictInt            = Field(default=26, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="ebgIndex")
    stm_index: StrictInt            = Field(default=27, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="stmIndex")
    smc_index: StrictInt            = Field(default=28, ge=CONTROL_FIRST, le=CONTROL_LAST, alias="smcIndex")

    report_inst: StrictBool         = Field(default=True, alias="reportInst", description="Annotate instruction fetches")
    report_data: StrictBool         = Field(default=True, alias="reportData", description="Annotate CPU data transfers")
    report_bus_grants: StrictBool   = Field(default=True, alias="reportBusGrants", description="Annotate DMA/refresh cycles")

    @model_validator(mode="after")
    def _distinct(self) -> Asm45Config:
        used = list(self.lines().values())
        if len(set(used)) != len(used):
            raise ValueError(f"control line indices must be distinct, got {used}")
        return self

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> Asm45Config:
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            raise ToolError(ErrorKind.INVALID_CONFIG, f"Invalid Asm45 configuration: {exc}") from exc

    def lines(self) -> dict[str, int]:
        return {
            "SMC":  self.smc_index,
            "STM":  self.stm_index,
            "EBG":  self.ebg_index,
            "BYTE": self.byte_index,
            "BL":   self.bl_index,
            "WRT":  self.wrt_index,
            "SYNC": self.sync_index,
        }
