"""Module: translate whitespace-separated word tokens into instructions.

This module contains:
- tokenize(source) -> iterator of tokens
- Compiler class that validates tokens and builds the instruction list
- translate(source) shortcut
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import IO, Union

from isa import Instruction, format_listing, lookup

Source = Union[str, bytes, IO[str], IO[bytes]]

# separators are the Unicode White_Space characters; \x1c-\x1f are not among them
WORD_RE = re.compile(r"[^\t\n\v\f\r \x85\xa0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000]+")


class CompileError(ValueError):
    """Raised when a token stream cannot be compiled."""

    pass


class UnknownIdentifier(CompileError):
    """Token is not one of the recognized identifiers."""

    def __init__(self, token: str) -> None:
        """Remember the offending token."""
        self.token = token
        super().__init__(f"invalid identifier '{token}'")


class UnmatchedLoopEnd(CompileError):
    """`select` found with no open `start`."""

    def __init__(self) -> None:
        """Build the error message."""
        super().__init__("unexpected 'select' without matching 'start'")


class UnclosedLoopStart(CompileError):
    """Input ended with open `start` branches."""

    def __init__(self, count: int) -> None:
        """Remember how many branches are left open."""
        self.count = count
        super().__init__(f"missing closing 'select' for {count} branch(es)")


class SourceReadError(CompileError):
    """Raised when the program source cannot be read."""

    pass


def _decode(chunk: str | bytes) -> str:
    if isinstance(chunk, bytes):
        return chunk.decode("utf-8")
    return chunk


def tokenize(source: Source) -> Iterator[str]:
    """Yield whitespace-delimited tokens from a string, bytes or stream.

    Streams are consumed line by line. Read and decode failures are raised
    as SourceReadError.
    """
    if isinstance(source, (str, bytes)):
        try:
            text = _decode(source)
        except UnicodeDecodeError as e:
            msg = f"cannot decode program source: {e}"
            raise SourceReadError(msg) from e
        yield from WORD_RE.findall(text)
        return

    lines = iter(source)
    while True:
        try:
            line = next(lines, None)
            if line is None:
                return
            text = _decode(line)
        except (OSError, UnicodeDecodeError) as e:
            msg = f"cannot read program source: {e}"
            raise SourceReadError(msg) from e
        yield from WORD_RE.findall(text)


class Compiler:
    """Compiler: transforms a token stream into a validated instruction list."""

    def __init__(self, source: Source) -> None:
        """Create a Compiler reading tokens from `source`."""
        self.source = source
        self.program: list[Instruction] = []
        self.branches = 0

    def emit(self, instr: Instruction) -> int:
        """Append instruction to the program and return its index."""
        self.program.append(instr)
        return len(self.program) - 1

    def _handle_token(self, tok: str) -> None:
        instr = lookup(tok)
        if instr is None:
            raise UnknownIdentifier(tok)
        if instr == Instruction.LOOP_START:
            self.branches += 1
        elif instr == Instruction.LOOP_END:
            if self.branches == 0:
                raise UnmatchedLoopEnd
            self.branches -= 1
        self.emit(instr)

    def compile(self) -> list[Instruction]:
        """Compile the whole source.

        Returns the instruction list. On any error the partial program is
        discarded and a CompileError is raised.
        """
        self.program = []
        self.branches = 0
        try:
            for tok in tokenize(self.source):
                self._handle_token(tok)
            if self.branches > 0:
                raise UnclosedLoopStart(self.branches)
        except CompileError:
            self.program = []
            raise

        logging.debug("Compiler: %d instruction(s)", len(self.program))
        if self.program:
            logging.debug("Compiler: listing\n%s", format_listing(self.program))
        return self.program


def translate(source: Source) -> list[Instruction]:
    """Compile `source` and return the instruction list."""
    return Compiler(source).compile()
