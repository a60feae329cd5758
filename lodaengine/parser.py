# lodaengine/parser.py
"""
Assembly text → :class:`~lodaengine.program.Program`.

Lines are matched one at a time by :mod:`lodaengine.grammar`; this module
checks each statement against the instruction set and folds ``lpb``/``lpe``
markers into nested :class:`~lodaengine.program.Loop` nodes with an
explicit stack. Every failure is a :class:`~lodaengine.errors.ParseFailure`
subclass carrying the file name, line, column and offending source line.

Usage::

    from lodaengine.parser import parse, parse_file

    program = parse("mov $1,2\\npow $1,$0\\nmov $0,$1\\n", program_id=79)
    program = parse_file("oeis/000/A000045.asm")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from lodaengine.errors import (
    MalformedOperandError,
    OperandCountError,
    ParseFailure,
    SourceSpan,
    UnbalancedLoopError,
    UnknownMnemonicError,
)
from lodaengine.grammar import (
    LineSyntaxError,
    OffsetDirective,
    RawInstruction,
    RawOperand,
    parse_line,
)
from lodaengine.program import (
    MAX_LOOP_DEPTH,
    MAX_LOOP_RANGE,
    Constant,
    Instruction,
    Loop,
    Node,
    Opcode,
    Operand,
    Program,
    is_register,
)

logger = logging.getLogger(__name__)


@dataclass
class _Frame:
    """An open loop (or the program top level when ``header`` is None)."""
    header: Optional[Tuple[Operand, Operand, int, str]] = None
    nodes: List[Node] = field(default_factory=list)


class _ProgramBuilder:
    """Accumulates statements line by line."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        self.stack: List[_Frame] = [_Frame()]
        self.offset: Optional[int] = None
        self.seen_instruction = False
        self.lineno = 0
        self.source_line = ""

    # -- helpers -------------------------------------------------------------

    def span(self, column: int = 0) -> SourceSpan:
        return SourceSpan(self.filename, self.lineno, column)

    def malformed(self, message: str, column: int = 0) -> MalformedOperandError:
        return MalformedOperandError(
            message, span=self.span(column), source_line=self.source_line
        )

    def operand(self, raw: RawOperand) -> Operand:
        if raw.operand is None:
            raise self.malformed(f"Malformed operand '{raw.text}'", raw.column)
        return raw.operand

    def register_target(self, raw: RawOperand, mnemonic: str) -> Operand:
        target = self.operand(raw)
        if not is_register(target):
            raise self.malformed(
                f"'{mnemonic}' cannot write to constant {target}", raw.column
            )
        return target

    def check_count(self, stmt: RawInstruction, low: int, high: int) -> None:
        found = len(stmt.operands)
        if low <= found <= high:
            return
        expected = str(low) if low == high else f"{low}-{high}"
        raise OperandCountError(
            stmt.mnemonic,
            expected,
            found,
            span=self.span(stmt.column),
            source_line=self.source_line,
        )

    # -- statements ----------------------------------------------------------

    def feed(self, lineno: int, text: str) -> None:
        self.lineno = lineno
        self.source_line = text.rstrip("\r\n")
        try:
            stmt = parse_line(self.source_line)
        except LineSyntaxError as exc:
            raise self.malformed(str(exc), exc.column) from exc
        if stmt is None:
            return
        if isinstance(stmt, OffsetDirective):
            self.directive(stmt)
        else:
            self.instruction(stmt)

    def directive(self, stmt: OffsetDirective) -> None:
        if self.offset is not None:
            raise self.malformed("Duplicate #offset directive", stmt.column)
        if self.seen_instruction:
            raise self.malformed("#offset must precede all instructions", stmt.column)
        self.offset = stmt.value

    def instruction(self, stmt: RawInstruction) -> None:
        opcode = Opcode.from_mnemonic(stmt.mnemonic)
        if opcode is None:
            raise UnknownMnemonicError(
                stmt.mnemonic,
                span=self.span(stmt.column),
                source_line=self.source_line,
            )
        self.seen_instruction = True

        if opcode is Opcode.LPE:
            self.check_count(stmt, 0, 0)
            self.close_loop(stmt)
        elif opcode is Opcode.LPB:
            self.check_count(stmt, 1, 2)
            self.open_loop(stmt)
        else:
            self.check_count(stmt, 2, 2)
            target = self.register_target(stmt.operands[0], stmt.mnemonic)
            source = self.operand(stmt.operands[1])
            if opcode.is_call and not (
                isinstance(source, Constant) and source.value >= 0
            ):
                raise self.malformed(
                    f"'{stmt.mnemonic}' needs a non-negative constant program id, "
                    f"got {source}",
                    stmt.operands[1].column,
                )
            self.stack[-1].nodes.append(
                Instruction(opcode=opcode, operands=(target, source), line=self.lineno)
            )

    def open_loop(self, stmt: RawInstruction) -> None:
        target = self.register_target(stmt.operands[0], stmt.mnemonic)
        length: Operand = Constant(1)
        if len(stmt.operands) == 2:
            length = self.operand(stmt.operands[1])
            if isinstance(length, Constant) and not (
                0 <= length.value <= MAX_LOOP_RANGE
            ):
                raise self.malformed(
                    f"Loop range length {length.value} is outside "
                    f"0..{MAX_LOOP_RANGE}",
                    stmt.operands[1].column,
                )
        if len(self.stack) > MAX_LOOP_DEPTH:
            raise UnbalancedLoopError(
                f"Loops nested deeper than {MAX_LOOP_DEPTH} levels",
                span=self.span(stmt.column),
                source_line=self.source_line,
            )
        self.stack.append(
            _Frame(header=(target, length, self.lineno, self.source_line))
        )

    def close_loop(self, stmt: RawInstruction) -> None:
        if len(self.stack) == 1:
            raise UnbalancedLoopError(
                "'lpe' without matching 'lpb'",
                span=self.span(stmt.column),
                source_line=self.source_line,
            )
        frame = self.stack.pop()
        target, length, line, _ = frame.header
        self.stack[-1].nodes.append(
            Loop(target=target, length=length, body=tuple(frame.nodes), line=line)
        )

    def finish(self, program_id: Optional[int]) -> Program:
        if len(self.stack) > 1:
            _, _, line, source_line = self.stack[-1].header
            raise UnbalancedLoopError(
                "'lpb' without matching 'lpe'",
                span=SourceSpan(self.filename, line, 0),
                source_line=source_line,
            )
        return Program(
            body=tuple(self.stack[0].nodes),
            offset=self.offset or 0,
            program_id=program_id,
        )


def parse(
    text: str,
    *,
    program_id: Optional[int] = None,
    filename: str = "<input>",
) -> Program:
    """
    Parse assembly *text* into an immutable :class:`Program`.

    Raises a :class:`~lodaengine.errors.ParseFailure` subclass on the
    first structural error.
    """
    builder = _ProgramBuilder(filename)
    for lineno, line in enumerate(text.splitlines(), start=1):
        builder.feed(lineno, line)
    program = builder.finish(program_id)
    logger.debug(
        "Parsed %s: %d instructions, offset %d",
        filename if program_id is None else f"A{program_id:06d}",
        program.instruction_count(),
        program.offset,
    )
    return program


def parse_file(
    path: Union[str, Path],
    *,
    program_id: Optional[int] = None,
) -> Program:
    """Read and parse an ``.asm`` file."""
    path = Path(path)
    return parse(
        path.read_text(encoding="utf-8"),
        program_id=program_id,
        filename=str(path),
    )


__all__ = [
    "parse",
    "parse_file",
    "ParseFailure",
]
