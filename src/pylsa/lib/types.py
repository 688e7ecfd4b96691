# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import NewType, TypeAlias

import numpy as np
from numpy.typing import NDArray


# Enum String Type
class StringEnum(str, Enum):
    """Py3.10-compatible StrEnum shim."""
    pass

class FloatEnum(float, Enum):
    """Float-like Enum base: members behave like floats."""
    pass

# ────────────────────────────────────────────────────────────────────────────────
# Core numerics
# ────────────────────────────────────────────────────────────────────────────────
NDArrayI64: TypeAlias   = NDArray[np.int64]

# ────────────────────────────────────────────────────────────────────────────────
# Paths / filesystem
# ────────────────────────────────────────────────────────────────────────────────
PathLike    = str | Path
FileNameStr = NewType("FileNameStr", str)

# ────────────────────────────────────────────────────────────────────────────────
# Unit-tagged NewTypes (scalars only; runtime = underlying type)
# ────────────────────────────────────────────────────────────────────────────────
# Time / index, all in sample-clock ticks
TimeStamp     = NewType("TimeStamp", int)
SampleIndex   = NewType("SampleIndex", int)
SampleValue   = NewType("SampleValue", int)          # packed channel bitfield
SampleRateHz  = NewType("SampleRateHz", int)         # 0 => state capture

# Channels
ChannelIndex  = NewType("ChannelIndex", int)         # 0..31
ChannelMask   = NewType("ChannelMask", int)          # 1 << ChannelIndex

# Serial line
BaudRate      = NewType("BaudRate", int)
BitLength     = NewType("BitLength", float)          # sample ticks per bit

# Cursors
CursorId      = NewType("CursorId", int)

# ────────────────────────────────────────────────────────────────────────────────
# Explicit public surface
# ────────────────────────────────────────────────────────────────────────────────
__all__ = [
    # enums
    "StringEnum", "FloatEnum",
    # numerics
    "NDArrayI64",
    # paths
    "PathLike", "FileNameStr",
    # unit-tagged scalars
    "TimeStamp", "SampleIndex", "SampleValue", "SampleRateHz",
    "ChannelIndex", "ChannelMask", "BaudRate", "BitLength", "CursorId",
]
