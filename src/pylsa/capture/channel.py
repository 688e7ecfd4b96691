# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pylsa.lib.constants import MAX_CHANNELS
from pylsa.lib.types import ChannelIndex, ChannelMask


class Channel(BaseModel):
    """Static metadata for one capture channel."""
    model_config = ConfigDict(frozen=True)

    index: ChannelIndex = Field(..., ge=0, lt=MAX_CHANNELS, description="Bit position of the channel in a sample value")
    label: str          = Field(default="", description="Display label; empty when unlabelled")
    enabled: bool       = Field(default=True, description="Whether the channel carries captured data")

    @field_validator("label")
    @classmethod
    def _strip_label(cls, v: str) -> str:
        return v.strip()

    @property
    def mask(self) -> ChannelMask:
        return ChannelMask(1 << self.index)

    @property
    def display_name(self) -> str:
        return self.label or f"Channel {self.index}"
