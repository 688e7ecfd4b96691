# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True, slots=True)
class Asm45Opcode:
    mask: int
    opcode: int
    mnemonic: str
    mode: int
    timing: int

    def matches(self, word: int) -> bool:
        return (word & self.mask) == self.opcode


@dataclass(frozen=True, slots=True)
class Disassembly:
    text: str
    timing: int
    opcode: Asm45Opcode | None = None


UNKNOWN: Final[str] = "???"

# Register file, indexed by base page address 0..31
REGISTERS: Final[tuple[str, ...]] = (
    "A",        # arithmetic accumulator A
    "B",        # arithmetic accumulator B
    "P",        # program counter
    "R",        # return stack pointer
    "R4",       # I/O register 4
    "R5",       # I/O register 5
    "R6",       # I/O register 6
    "R7",       # I/O register 7
    "R10",      # interrupt vector table pointer
    "Pa",       # peripheral address register
    "W",        # working register
    "Dmapa",    # DMA peripheral address register
    "Dmama",    # DMA memory address register
    "Dmac",     # DMA count register
    "C",        # stack pointer C
    "D",        # stack pointer D
    "Ar2",      # BCD accumulator
    "Ar2_2",
    "Ar2_3",
    "Ar2_4",
    "Se",       # shift-extend register
    "R25",
    "R26",
    "R27",
    "R30",      # extend/carry
    "R31",      # overflow
    "R32",      # indirect access, upper half of address space
    "R33",      # instruction fetch, lower half
    "R34",      # instruction fetch, upper half
    "R35",      # indirect access, lower half
    "R36",      # base page addressing
    "R37",      # bus grant (DMA)
)


def _op(mask: int, opcode: int, mnemonic: str, mode: int, timing: int) -> Asm45Opcode:
    return Asm45Opcode(mask, opcode, mnemonic, mode, timing)


# Ordered: the first matching entry wins.
# Address modes: 0 none, 1 memory reference, 2 EXE register, 3 skip,
# 4 skip with hold/change, 5 return, 6 4-bit count, 7 stack register.
HP9845_OPCODES: Final[tuple[Asm45Opcode, ...]] = (
    # pseudo operations
    _op(0xffff, 0x0000, "NOP", 0, 11),
    _op(0xffff, 0xf14f, "CLA", 0, 11),
    _op(0xffff, 0xf94f, "CLB", 0, 11),

    # BPC memory reference group
    _op(0x7800, 0x0000, "LDA", 1, 13),
    _op(0x7800, 0x0800, "LDB", 1, 13),
    _op(0x7800, 0x1000, "CPA", 1, 16),
    _op(0x7800, 0x1800, "CPB", 1, 16),
    _op(0x7800, 0x2000, "ADA", 1, 13),
    _op(0x7800, 0x2800, "ADB", 1, 13),
    _op(0x7800, 0x3000, "STA", 1, 13),
    _op(0x7800, 0x3800, "STB", 1, 13),
    _op(0x7800, 0x4000, "JSM", 1, 17),
    _op(0x7800, 0x4800, "ISZ", 1, 19),
    _op(0x7800, 0x5000, "AND", 1, 13),
    _op(0x7800, 0x5800, "DSZ", 1, 19),
    _op(0x7800, 0x6000, "IOR", 1, 13),
    _op(0x7800, 0x6800, "JMP", 1, 8),
    _op(0x7fe0, 0x7000, "EXE", 2, 8),

    # BPC skip group
    _op(0xffc0, 0x7400, "RZA", 3, 14),
    _op(0xffc0, 0x7c00, "RZB", 3, 14),
    _op(0xffc0, 0x7440, "RIA", 3, 14),
    _op(0xffc0, 0x7c40, "RIB", 3, 14),
    _op(0xffc0, 0x7500, "SZA", 3, 14),
    _op(0xffc0, 0x7d00, "SZB", 3, 14),
    _op(0xffc0, 0x7540, "SIA", 3, 14),
    _op(0xffc0, 0x7d40, "SIB", 3, 14),
    _op(0xffc0, 0x7480, "SFS", 3, 14),
    _op(0xffc0, 0x7580, "SFC", 3, 14),
    _op(0xffc0, 0x74c0, "SDS", 3, 14),
    _op(0xffc0, 0x75c0, "SDC", 3, 14),
    _op(0xffc0, 0x7c80, "SSS", 3, 14),
    _op(0xffc0, 0x7d80, "SSC", 3, 14),
    _op(0xffc0, 0x7cc0, "SHS", 3, 14),
    _op(0xffc0, 0x7dc0, "SHC", 3, 14),

    # BPC alter group
    _op(0xff00, 0x7600, "SLA", 4, 14),
    _op(0xff00, 0x7e00, "SLB", 4, 14),
    _op(0xff00, 0x7700, "RLA", 4, 14),
    _op(0xff00, 0x7f00, "RLB", 4, 14),
    _op(0xff00, 0xf400, "SAP", 4, 14),
    _op(0xff00, 0xfc00, "SBP", 4, 14),
    _op(0xff00, 0xf500, "SAM", 4, 14),
    _op(0xff00, 0xfd00, "SBM", 4, 14),
    _op(0xff00, 0xf600, "SOC", 4, 14),
    _op(0xff00, 0xf700, "SOS", 4, 14),
    _op(0xff00, 0xfe00, "SEC", 4, 14),
    _op(0xff00, 0xff00, "SES", 4, 14),

    # BPC complement group
    _op(0xffff, 0xf020, "TCA", 0, 9),
    _op(0xffff, 0xf820, "TCB", 0, 9),
    _op(0xffff, 0xf060, "CMA", 0, 9),
    _op(0xffff, 0xf860, "CMB", 0, 9),

    _op(0xff80, 0xf080, "RET", 5, 16),

    # BPC shift/rotate group
    _op(0xfff0, 0xf100, "AAR", 6, 9),
    _op(0xfff0, 0xf900, "ABR", 6, 9),
    _op(0xfff0, 0xf140, "SAR", 6, 9),
    _op(0xfff0, 0xf940, "SBR", 6, 9),
    _op(0xfff0, 0xf180, "SAL", 6, 9),
    _op(0xfff0, 0xf980, "SBL", 6, 9),
    _op(0xfff0, 0xf1c0, "RAR", 6, 9),
    _op(0xfff0, 0xf9c0, "RBR", 6, 9),

    # IOC interrupt group
    _op(0xffff, 0x7110, "EIR", 0, 12),
    _op(0xffff, 0x7118, "DIR", 0, 12),

    # IOC DMA group
    _op(0xffff, 0x7100, "SDO", 0, 12),
    _op(0xffff, 0x7108, "SDI", 0, 12),
    _op(0xffff, 0x7120, "DMA", 0, 12),
    _op(0xffff, 0x7128, "PCM", 0, 12),
    _op(0xffff, 0x7138, "DDR", 0, 12),

    # IOC stack group
    _op(0xffff, 0x7140, "DBL", 0, 12),
    _op(0xffff, 0x7148, "CBL", 0, 12),
    _op(0xffff, 0x7150, "DBU", 0, 12),
    _op(0xffff, 0x7158, "CBU", 0, 12),

    _op(0xff78, 0x7160, "PWC", 7, 23),
    _op(0xff78, 0x7168, "PWD", 7, 23),
    _op(0xff78, 0x7960, "PBC", 7, 23),
    _op(0xff78, 0x7968, "PBD", 7, 23),
    _op(0xff78, 0x7170, "WWC", 7, 23),
    _op(0xff78, 0x7178, "WWD", 7, 23),
    _op(0xff78, 0x7970, "WBC", 7, 23),
    _op(0xff78, 0x7978, "WBD", 7, 23),

    # EMC four word group
    _op(0xfff0, 0x7380, "CLR", 6, 16),
    _op(0xfff0, 0x7300, "XFR", 6, 21),

    # EMC mantissa shift group
    _op(0xffff, 0x7b00, "MRX", 0, 62),
    _op(0xffff, 0x7b21, "DRS", 0, 56),
    _op(0xffff, 0x7b61, "MLY", 0, 32),
    _op(0xffff, 0x7b40, "MRY", 0, 33),
    _op(0xffff, 0x7340, "NRM", 0, 23),

    # EMC arithmetic group
    _op(0xffff, 0x7280, "FXA", 0, 40),
    _op(0xffff, 0x7200, "MWA", 0, 28),
    _op(0xffff, 0x7260, "CMX", 0, 59),
    _op(0xffff, 0x7220, "CMY", 0, 23),
    _op(0xffff, 0x7a00, "FMP", 0, 42),
    _op(0xffff, 0x7a21, "FDV", 0, 37),
    _op(0xffff, 0x7b8f, "MPY", 0, 65),
    _op(0xffff, 0x73c0, "CDC", 0, 11),
)

_CLR_GROUP: Final[int] = 0x7380


def lookup(word: int) -> Asm45Opcode | None:
    """First table entry matching the 16-bit instruction ``word``."""
    for op in HP9845_OPCODES:
        if op.matches(word):
            return op
    return None


def _signed(value: int, bits: int) -> int:
    sign = 1 << (bits - 1)
    return value - (1 << bits) if value & sign else value


def disassemble(address: int, word: int) -> Disassembly:
    """
    Disassemble one instruction fetched from ``address``.

    Returns:
        Disassembly with the assembler text and the base timing adjusted for
        the address mode; ``"???"`` when no table entry matches.
    """
    op = lookup(word)
    if op is None:
        return Disassembly(UNKNOWN, 0)

    text = op.mnemonic
    timing = op.timing
    mode = op.mode

    if mode == 1:
        # 10-bit signed address field, current page (bit 10) or base page
        operand = _signed(word & 0x03ff, 10)
        if word & 0x0400:
            text += f" {(address + operand) & 0xffff:04x}"
        elif operand < 0:
            text += f" {0x10000 + operand:04x}"
        elif operand < 32:
            text += f" {REGISTERS[operand]}"
        else:
            text += f" {operand:04x}"

        if word & 0x8000:
            timing += 6
            text += ",I"

        if not word & 0x0400 and (operand < 0 or operand > 31):
            text += " [B]"

    elif mode == 2:
        text += f" {REGISTERS[word & 0x001f]}"
        if word & 0x8000:
            timing += 6
            text += ",I"

    elif mode == 3:
        operand = _signed(word & 0x003f, 6)
        text += f" *+{operand} [{(address + operand) & 0xffff:04x}]"

    elif mode == 4:
        operand = _signed(word & 0x003f, 6)
        text += f" *+{operand}"
        if word & 0x0080:
            text += ",S" if word & 0x0040 else ",C"
        text += f" [{(address + operand) & 0xffff:04x}]"

    elif mode == 5:
        operand = _signed(word & 0x3f, 6)
        text += f" {operand}"
        if word & 0x40:
            text += ",P"

    elif mode == 6:
        count = (word & 0xf) + 1
        text += f" {count}"
        if (word & 0xfff0) == _CLR_GROUP:
            timing += count * 6
        # BUG: repeats the CLR comparison, so the XFR rate (count * 12) is
        # never applied and XFR falls through to the generic "+ count".
        elif (word & 0xfff0) == _CLR_GROUP:
            timing += count * 12
        else:
            timing += count

    elif mode == 7:
        text += f" {REGISTERS[word & 0x7]}"
        text += ",D" if word & 0x0080 else ",I"

    return Disassembly(text, timing, op)
