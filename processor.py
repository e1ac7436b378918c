"""Processor (Datapath + ControlUnit) and CLI wrapper.

Provides program execution on a byte tape, logging initialization and the
`konamicode` command line entry point.
"""

from __future__ import annotations

import argparse
import logging
import os
import stat
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

from config import ConfigError, load_config
from isa import Instruction, mnemonic
from translator import CompileError, translate

LOGFILE = "konamicode.log"
TAPE_CELLS = 30000
USAGE = "usage: konamicode <file>"


def init_logging(prog: str, logfile: str | None = None, debug: bool = False) -> None:
    """Configure root logger.

    Errors always go to stderr as single lines prefixed with `prog`. If
    debug=True a DEBUG trace is also written to `logfile` using a compact
    format without timestamps:
        DEBUG root:processor.py:197 Compiler: 4 instruction(s)
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(logging.DEBUG if debug else logging.ERROR)

    prefix = prog.replace("%", "%%")
    eh = logging.StreamHandler(sys.stderr)
    eh.setLevel(logging.ERROR)
    eh.setFormatter(logging.Formatter(f"{prefix}: %(message)s"))
    root.addHandler(eh)

    if debug:
        fh = logging.FileHandler(logfile or LOGFILE, mode="w", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"))
        root.addHandler(fh)


class ExecutionError(RuntimeError):
    """Raised when a program fails at run time."""

    pass


class ProgramCounterOutOfBounds(ExecutionError):
    """Program counter left the program after an instruction."""

    def __init__(self, value: int) -> None:
        """Remember the offending program counter."""
        self.value = value
        super().__init__(f"program counter ({value}) out of bounds")


class DataPointerOutOfBounds(ExecutionError):
    """Data pointer left the tape after an instruction."""

    def __init__(self, value: int) -> None:
        """Remember the offending data pointer."""
        self.value = value
        super().__init__(f"data pointer ({value}) out of bounds")


class InputReadError(ExecutionError):
    """Program input could not be read."""

    pass


class OutputWriteError(ExecutionError):
    """Program output could not be written."""

    pass


class ControlStackUnderflow(ExecutionError):
    """Loop end reached with an empty control stack."""

    def __init__(self, pc: int) -> None:
        """Remember where the stack ran dry."""
        self.pc = pc
        super().__init__(f"control stack underflow at instruction {pc}")


class StepLimitExceeded(ExecutionError):
    """Program ran longer than the configured step limit."""

    def __init__(self, limit: int) -> None:
        """Remember the exhausted limit."""
        self.limit = limit
        super().__init__(f"step limit ({limit}) exceeded")


class Datapath:
    """Datapath (tape + data pointer + I/O streams) for the VM."""

    tape_cells: int
    tape: bytearray
    DP: int
    input_stream: IO[bytes]
    output_stream: IO[str]

    def __init__(
        self,
        input_stream: IO[bytes],
        output_stream: IO[str],
        tape_cells: int = TAPE_CELLS,
    ) -> None:
        """Initialize zeroed tape and data pointer."""
        self.tape_cells = int(tape_cells)
        self.tape = bytearray(self.tape_cells)
        self.DP = 0
        self.input_stream = input_stream
        self.output_stream = output_stream

    @property
    def cell(self) -> int:
        """Value of the cell under the data pointer."""
        return self.tape[self.DP]

    def increment(self) -> None:
        self.tape[self.DP] = (self.tape[self.DP] + 1) & 0xFF

    def decrement(self) -> None:
        self.tape[self.DP] = (self.tape[self.DP] - 1) & 0xFF

    def move_left(self) -> None:
        self.DP -= 1

    def move_right(self) -> None:
        self.DP += 1

    def read_byte(self) -> None:
        """Read one byte into the current cell; EOF leaves the cell unchanged."""
        try:
            data = self.input_stream.read(1)
        except (OSError, ValueError) as e:
            msg = f"cannot read program input: {e}"
            raise InputReadError(msg) from e
        if not data:
            logging.debug("READ: EOF -> cell %d unchanged (%d)", self.DP, self.tape[self.DP])
            return
        self.tape[self.DP] = data[0]

    def write_byte(self) -> None:
        """Write the current cell as a single character."""
        try:
            self.output_stream.write(chr(self.tape[self.DP]))
        except (OSError, ValueError) as e:
            msg = f"cannot write program output: {e}"
            raise OutputWriteError(msg) from e

    def flush(self) -> None:
        try:
            self.output_stream.flush()
        except (OSError, ValueError) as e:
            msg = f"cannot write program output: {e}"
            raise OutputWriteError(msg) from e

    def check_bounds(self) -> None:
        if not 0 <= self.DP < self.tape_cells:
            raise DataPointerOutOfBounds(self.DP)

    def nonzero_cells(self) -> dict[int, int]:
        """Return {index: value} for every nonzero tape cell."""
        return {i: v for i, v in enumerate(self.tape) if v}


class ControlUnit:
    """Control unit implementing the fetch-exec loop over the program."""

    program: list[Instruction]
    dp: Datapath
    PC: int
    stack: list[int]
    step: int
    step_limit: int | None

    def __init__(self, program: Sequence[Instruction], dp: Datapath, step_limit: int | None = None) -> None:
        """Create a ControlUnit running `program` on `dp`."""
        self.program = list(program)
        self.dp = dp
        self.PC = 0
        self.stack = []
        self.step = 0
        self.step_limit = step_limit

    def _log_step(self, instr: Instruction) -> None:
        dp = self.dp
        logging.debug(
            "STEP: %6d PC: %5d DP: %5d CELL: %3d STACK: %3d\tINSTR: %s",
            self.step,
            self.PC,
            dp.DP,
            dp.cell,
            len(self.stack),
            mnemonic(instr),
        )

    def _skip_loop(self) -> None:
        """Move PC to the LOOP_END matching the LOOP_START at PC.

        Nested loops inside the skipped body are stepped over. If the program
        ends first PC is left past the end for the bounds check to report.
        """
        depth = 1
        while depth > 0:
            self.PC += 1
            if self.PC >= len(self.program):
                return
            instr = self.program[self.PC]
            if instr == Instruction.LOOP_START:
                depth += 1
            elif instr == Instruction.LOOP_END:
                depth -= 1

    def exec(self, instr: Instruction) -> None:  # noqa: C901
        """Execute a single instruction."""
        dp = self.dp

        if instr == Instruction.INCREMENT_CELL:
            dp.increment()
            return
        if instr == Instruction.DECREMENT_CELL:
            dp.decrement()
            return
        if instr == Instruction.MOVE_LEFT:
            dp.move_left()
            return
        if instr == Instruction.MOVE_RIGHT:
            dp.move_right()
            return
        if instr == Instruction.READ_BYTE:
            dp.read_byte()
            return
        if instr == Instruction.WRITE_BYTE:
            dp.write_byte()
            return

        if instr == Instruction.LOOP_START:
            if dp.cell == 0:
                self._skip_loop()
            else:
                self.stack.append(self.PC)
            return
        if instr == Instruction.LOOP_END:
            if not self.stack:
                raise ControlStackUnderflow(self.PC)
            if dp.cell != 0:
                self.PC = self.stack[-1]
            else:
                self.stack.pop()
            return
        msg = f"unhandled instruction: {instr!r}"
        raise ValueError(msg)

    def check_bounds(self) -> None:
        if not 0 <= self.PC < len(self.program):
            raise ProgramCounterOutOfBounds(self.PC)
        self.dp.check_bounds()

    def run(self) -> int:
        """Execute the program until its end and return the step count."""
        debug = logging.getLogger().isEnabledFor(logging.DEBUG)
        while self.PC < len(self.program):
            if self.step_limit is not None and self.step >= self.step_limit:
                raise StepLimitExceeded(self.step_limit)

            instr = self.program[self.PC]
            self.exec(instr)
            self.step += 1
            self.check_bounds()
            if debug:
                self._log_step(instr)
            self.PC += 1

        logging.debug("End of program after %d step(s)", self.step)
        if debug:
            logging.debug("Tape (nonzero cells): %s", self.dp.nonzero_cells())
        return self.step


# ---------- Public API ----------
def execute(
    program: Sequence[Instruction],
    input_stream: IO[bytes],
    output_stream: IO[str],
    config: str | dict[str, Any] | None = None,
) -> int:
    """Run `program` against the given streams and return the step count.

    Raises ExecutionError on the first run-time failure.
    """
    cfg = load_config(config)
    dp = Datapath(input_stream, output_stream, tape_cells=cfg["tape_cells"])
    cu = ControlUnit(program, dp, step_limit=cfg["step_limit"])
    try:
        steps = cu.run()
    except ExecutionError:
        try:
            dp.flush()
        except OutputWriteError as e:
            logging.debug("Flush after failed run: %s", e)
        raise
    dp.flush()
    return steps


# ---------- CLI ----------
class UsageError(Exception):
    """Raised on bad command line usage."""

    pass


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def _build_arg_parser(prog: str) -> argparse.ArgumentParser:
    ap = _ArgumentParser(
        prog=prog,
        description="Konami code interpreter. Reads the program from piped stdin or from a file.",
    )
    ap.add_argument("program", nargs="*", help="program file (ignored when stdin is piped)")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--debug", action="store_true", help="enable debug logging to logfile (per-step state)")
    ap.add_argument("--logfile", default=None, help=f"path to debug log (default {LOGFILE})")
    return ap


def _program_name() -> str:
    if sys.argv and sys.argv[0]:
        return Path(sys.argv[0]).name
    return "konamicode"


def _stdin_is_piped() -> bool:
    """Tell whether stdin carries the program (anything but a character device)."""
    try:
        mode = os.fstat(sys.stdin.fileno()).st_mode
    except (AttributeError, OSError, ValueError):
        return not sys.stdin.isatty()
    return not stat.S_ISCHR(mode)


def _load_program(paths: list[str]) -> list[Instruction]:
    """Compile program from piped stdin or from the single given path."""
    if _stdin_is_piped():
        logging.debug("CLI: reading program from stdin")
        return translate(sys.stdin)
    if len(paths) != 1:
        raise UsageError(USAGE)
    logging.debug("CLI: reading program from %s", paths[0])
    with open(paths[0], encoding="utf-8") as f:
        return translate(f)


def main(argv: list[str] | None = None, prog: str | None = None) -> int:
    """Run the interpreter and return the process exit status."""
    prog = prog or _program_name()
    init_logging(prog)

    try:
        args = _build_arg_parser(prog).parse_args(argv)
        cfg = load_config(args.config)
    except (UsageError, ConfigError) as e:
        logging.error("%s", e)
        return 1

    try:
        init_logging(prog, logfile=args.logfile or cfg["logfile"], debug=args.debug)
        program = _load_program(args.program)
        execute(program, sys.stdin.buffer, sys.stdout, cfg)
    except (UsageError, OSError, CompileError, ExecutionError) as e:
        logging.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
