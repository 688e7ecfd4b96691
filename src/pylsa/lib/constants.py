# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from typing import Final

MAX_CHANNELS: Final[int]            = 32
DISABLED_CHANNEL: Final[int]        = -1

# Baud rate sentinel requesting auto-detection
AUTO_BAUD_RATE: Final[int]          = -1

# Nominal baud rates a measured rate may snap to
CANONICAL_BAUD_RATES: Final[tuple[int, ...]] = (
    150, 300, 600, 1200, 2400, 4800, 9600, 14400, 19200,
    28800, 38400, 57600, 115200, 230400, 460800, 921600,
)

# Cooperative yield interval in samples
DEFAULT_YIELD_INTERVAL: Final[int]  = 65536

# Annotation property keys
KEY_COLOR: Final[str]               = "color"
KEY_TYPE: Final[str]                = "type"
KEY_EVENT_TYPE: Final[str]          = "eventType"
KEY_TEXT: Final[str]                = "text"

TYPE_SYMBOL: Final[str]             = "symbol"
TYPE_EVENT: Final[str]              = "event"

# Error annotation colors
COLOR_FRAME_ERROR: Final[str]       = "#ff6600"
COLOR_PARITY_ERROR: Final[str]      = "#ff9900"
COLOR_START_ERROR: Final[str]       = "#ffcc00"
COLOR_WARNING: Final[str]           = "#ff0000"
