"""ISA: instruction vocabulary and helpers."""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum


class Instruction(IntEnum):
    """Keeps all instructions of the tape machine."""

    INCREMENT_CELL = 0  # TAPE[DP] += 1
    DECREMENT_CELL = 1  # TAPE[DP] -= 1
    MOVE_LEFT = 2  # DP -= 1
    MOVE_RIGHT = 3  # DP += 1
    READ_BYTE = 4  # TAPE[DP] = in
    WRITE_BYTE = 5  # out = TAPE[DP]
    LOOP_START = 6  # skip to matching LOOP_END if TAPE[DP] == 0
    LOOP_END = 7  # back to matching LOOP_START if TAPE[DP] != 0


IDENTIFIERS: dict[str, Instruction] = {
    "up": Instruction.INCREMENT_CELL,
    "down": Instruction.DECREMENT_CELL,
    "left": Instruction.MOVE_LEFT,
    "right": Instruction.MOVE_RIGHT,
    "a": Instruction.READ_BYTE,
    "b": Instruction.WRITE_BYTE,
    "start": Instruction.LOOP_START,
    "select": Instruction.LOOP_END,
}

_MNEMONICS: dict[Instruction, str] = {instr: ident for ident, instr in IDENTIFIERS.items()}


def lookup(token: str) -> Instruction | None:
    """Return the instruction for `token` (case-insensitive) or None."""
    return IDENTIFIERS.get(token.lower())


def mnemonic(instr: Instruction) -> str:
    """Get instruction mnemonic."""
    return _MNEMONICS[instr]


def format_listing(program: Iterable[Instruction]) -> str:
    """Render program as `<index> - <mnemonic>` lines."""
    return "\n".join(f"{pc} - {mnemonic(instr)}" for pc, instr in enumerate(program))
