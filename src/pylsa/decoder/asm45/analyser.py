# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, Field

from pylsa.annotation.model import SymbolAnnotation
from pylsa.decoder.asm45.config import Asm45Config
from pylsa.decoder.asm45.opcodes import REGISTERS, disassemble
from pylsa.decoder.base import DecoderTask, ProgressMonitor, ToolContext
from pylsa.lib.constants import KEY_COLOR, KEY_TEXT, KEY_TYPE, TYPE_SYMBOL
from pylsa.lib.errors import ErrorKind, ToolError
from pylsa.lib.types import ChannelIndex, StringEnum, TimeStamp

KEY_ADDRESS     = "address"
KEY_CLOCKS      = "clocks"
KEY_BLOCK       = "block"
KEY_ASM45TYPE   = "asm45type"
KEY_IDA         = "ida"
KEY_BUSGRANT    = "busgrant"
KEY_TIMING      = "timing"
KEY_TRIGGER     = "trigger"

COLOR_TRIGGER       = "#ffa0ff"
COLOR_INSTRUCTION   = "#ffffff"
COLOR_BUS_GRANT     = "#64ff64"
COLOR_DATA          = "#e0e0ff"


class Asm45CycleType(StringEnum):
    INSTRUCTION     = "I"
    DATA_WORD       = "DW"
    DATA_BYTE_LEFT  = "DBL"
    DATA_BYTE_RIGHT = "DBR"


class Asm45CycleKind(StringEnum):
    INSTRUCTION     = "INSTRUCTION"
    DATA_WORD       = "DATA_WORD"
    DATA_BYTE_LEFT  = "DATA_BYTE_LEFT"
    DATA_BYTE_RIGHT = "DATA_BYTE_RIGHT"
    BUS_GRANT       = "BUS_GRANT"


class Asm45Cycle(BaseModel):
    start: TimeStamp                = Field(..., description="STM falling edge")
    end: TimeStamp                  = Field(..., description="SMC rising edge")
    cycle_type: Asm45CycleType      = Field(..., description="I, DW, DBL or DBR")
    bus_grant: bool                 = Field(default=False, description="External agent owned the bus")
    address: int                    = Field(..., description="16-bit address latched at STM falling")
    block: int                      = Field(..., description="6-bit block address latched at STM falling")
    ida: int                        = Field(..., description="16-bit IDA bus word at SMC rising")
    clocks: int                     = Field(..., description="Sample ticks since the previous reported cycle")
    text: str                       = Field(..., description="Mnemonic or data transfer")
    timing: int | None              = Field(default=None, description="Instruction timing in processor clocks")
    trigger: bool                   = Field(default=False, description="First cycle at or after the trigger")

    @property
    def kind(self) -> Asm45CycleKind:
        if self.bus_grant:
            return Asm45CycleKind.BUS_GRANT
        return {
            Asm45CycleType.INSTRUCTION:     Asm45CycleKind.INSTRUCTION,
            Asm45CycleType.DATA_WORD:       Asm45CycleKind.DATA_WORD,
            Asm45CycleType.DATA_BYTE_LEFT:  Asm45CycleKind.DATA_BYTE_LEFT,
            Asm45CycleType.DATA_BYTE_RIGHT: Asm45CycleKind.DATA_BYTE_RIGHT,
        }[self.cycle_type]


class Asm45DataSet(BaseModel):
    cycles: list[Asm45Cycle]    = Field(default_factory=list)
    instructions: int           = Field(default=0)
    data_transfers: int         = Field(default=0)
    bus_grants: int             = Field(default=0)


def classify(ebg_fell: bool, sync: int, byte: int, bl: int) -> Asm45CycleKind:
    """Cycle kind from the raw levels of the bus status lines."""
    if ebg_fell:
        return Asm45CycleKind.BUS_GRANT
    if sync:
        return Asm45CycleKind.INSTRUCTION
    if not byte:
        return Asm45CycleKind.DATA_WORD
    return Asm45CycleKind.DATA_BYTE_LEFT if bl else Asm45CycleKind.DATA_BYTE_RIGHT


def _data_type(byte: int, bl: int) -> Asm45CycleType:
    if not byte:
        return Asm45CycleType.DATA_WORD
    return Asm45CycleType.DATA_BYTE_LEFT if bl else Asm45CycleType.DATA_BYTE_RIGHT


def transfer_text(address: int, ida: int, write: bool) -> str:
    arrow = "->" if write else "<-"
    target = REGISTERS[address] if address < 32 else f"{address:04x}"
    return f"{target}{arrow}${ida:04x}"


class Asm45AnalyserTask(DecoderTask[Asm45DataSet]):
    """
    Traces HP9845 hybrid-processor bus cycles.

    The IDA address/data bus occupies channels 0..15 and is active low, as is
    the block address in channels 16..21. A cycle runs from STM falling to SMC
    rising: the address and block are latched at STM falling, together with
    SYNC; BYTE, BL and WRT are taken from the sample just before SMC rises.
    """
    name: ClassVar[str] = "asm45"

    def __init__(self, context: ToolContext, config: Asm45Config, monitor: ProgressMonitor | None = None) -> None:
        super().__init__(context, monitor)
        self.config = config

    def _validate(self) -> None:
        count = self.capture.channel_count
        for line, idx in self.config.lines().items():
            if idx >= count:
                raise ToolError(ErrorKind.INVALID_CONFIG, f"{line} index {idx} exceeds the capture's {count} channels")

    def _wanted(self, cycle_type: Asm45CycleType, bus_grant: bool) -> bool:
        cfg = self.config
        if bus_grant:
            return cfg.report_bus_grants
        if cycle_type is Asm45CycleType.INSTRUCTION:
            return cfg.report_inst
        return cfg.report_data

    def decode(self) -> Asm45DataSet:
        self._validate()
        cfg = self.config
        capture = self.capture
        smc_idx = cfg.smc_index

        self.prepare_channel(smc_idx, "SMC")
        for line, idx in cfg.lines().items():
            if idx != smc_idx:
                self.prepare_channel(idx, line)

        smc = 1 << smc_idx
        stm = 1 << cfg.stm_index
        ebg = 1 << cfg.ebg_index
        byte_m = 1 << cfg.byte_index
        bl_m = 1 << cfg.bl_index
        wrt_m = 1 << cfg.wrt_index
        sync_m = 1 << cfg.sync_index

        start = self.context.start_index
        end = self.context.end_index
        values = capture.values[start:end + 1].tolist()
        stamps = capture.timestamps[start:end + 1].tolist()
        trigger = capture.trigger_position or 0

        dataset = Asm45DataSet()
        status = values[0]
        in_cycle = False
        cycle_start = 0
        address = 0
        block = 0
        sync = 0
        ebg_fell = False
        last_report = stamps[0]
        last_timing = -1

        for n in range(1, len(values)):
            self.monitor.check_cancelled()
            if self.monitor.due(n):
                self.monitor.set_position(n, 0, len(values) - 1)

            control = values[n]
            ts = stamps[n]

            if (status & ebg) and not (control & ebg):
                ebg_fell = True

            # start memory cycle
            if (status & stm) and not (control & stm):
                in_cycle = True
                cycle_start = ts
                address = ~control & 0xffff
                block = (~control >> 16) & 0x3f
                sync = 1 if control & sync_m else 0
                ebg_fell = False

            # memory cycle complete
            if in_cycle and not (status & smc) and (control & smc):
                ida = ~control & 0xffff
                byte = 1 if status & byte_m else 0
                bl = 1 if status & bl_m else 0
                write = bool(status & wrt_m)
                bus_grant = ebg_fell

                timing: int | None = None
                if not bus_grant and sync:
                    cycle_type = Asm45CycleType.INSTRUCTION
                    dis = disassemble(address, ida)
                    text, timing = dis.text, dis.timing
                else:
                    cycle_type = _data_type(byte, bl)
                    text = transfer_text(address, ida, write)

                if self._wanted(cycle_type, bus_grant):
                    current = cycle_start - trigger
                    is_trigger = last_timing < 0 <= current
                    last_timing = current

                    cycle = Asm45Cycle(
                        start       =   TimeStamp(cycle_start),
                        end         =   TimeStamp(ts),
                        cycle_type  =   cycle_type,
                        bus_grant   =   bus_grant,
                        address     =   address,
                        block       =   block,
                        ida         =   ida,
                        clocks      =   ts - last_report,
                        text        =   text,
                        timing      =   timing,
                        trigger     =   is_trigger,
                    )
                    last_report = ts
                    self._report(dataset, cycle, smc_idx)

                in_cycle = False

            status = control

        self.monitor.finish()
        self.logger.info(f"Asm45 trace finished: {dataset.instructions} instructions, "
                         f"{dataset.data_transfers} data transfers, {dataset.bus_grants} bus grants")
        return dataset

    def _report(self, dataset: Asm45DataSet, cycle: Asm45Cycle, channel: int) -> None:
        dataset.cycles.append(cycle)
        if cycle.bus_grant:
            dataset.bus_grants += 1
            color = COLOR_BUS_GRANT
        elif cycle.cycle_type is Asm45CycleType.INSTRUCTION:
            dataset.instructions += 1
            color = COLOR_INSTRUCTION
        else:
            dataset.data_transfers += 1
            color = COLOR_DATA

        properties: dict[str, Any] = {
            KEY_COLOR:      COLOR_TRIGGER if cycle.trigger else color,
            KEY_TYPE:       TYPE_SYMBOL,
            KEY_BUSGRANT:   cycle.bus_grant,
            KEY_ADDRESS:    cycle.address,
            KEY_CLOCKS:     cycle.clocks,
            KEY_BLOCK:      cycle.block,
            KEY_ASM45TYPE:  cycle.cycle_type.value,
            KEY_IDA:        cycle.ida,
            KEY_TEXT:       cycle.text,
            KEY_TRIGGER:    cycle.trigger,
        }
        if cycle.timing is not None:
            properties[KEY_TIMING] = cycle.timing

        self.annotations.add(SymbolAnnotation(
            channel     =   ChannelIndex(channel),
            start       =   cycle.start,
            end         =   cycle.end,
            value       =   cycle.ida,
            properties  =   properties,
        ))
