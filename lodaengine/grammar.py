# lodaengine/grammar.py
"""
grammar.py: line grammar of the assembly language
===================================================

Every source line is matched independently by a small Parsimonious PEG.
The visitor turns the parse tree into *raw* statements: a mnemonic with
its operand tokens, or an ``#offset`` directive. Whether a mnemonic
exists, how many operands it takes and how loops nest is decided by
:mod:`lodaengine.parser`, which has the whole program in view.

Malformed operand tokens are still accepted by the grammar (rule
``junk``) so that the parser can point at the offending column instead
of reporting a generic syntax error for the whole line.

Usage::

    from lodaengine.grammar import parse_line

    stmt = parse_line("add $1,$$2 ; comment")
    stmt.mnemonic            # "add"
    [str(o.operand) for o in stmt.operands]   # ["$1", "$$2"]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from lodaengine.program import Constant, Direct, Indirect, Operand


# ═══════════════════════════════════════════════════════════════════
#  PART 1: LINE GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

LINE_GRAMMAR = Grammar(r'''
    line            = _ statement? _ comment?
    statement       = directive / instruction

    # ─────────────────────────────────────────────────────────────
    # Directives
    # ─────────────────────────────────────────────────────────────

    directive       = "#offset" ws integer

    # ─────────────────────────────────────────────────────────────
    # Instructions
    # ─────────────────────────────────────────────────────────────

    instruction     = mnemonic operand_list?
    operand_list    = ws operand (_ "," _ operand)*
    operand         = indirect / direct / constant / junk

    indirect        = ~r"\$\$\d+(?![^,;\s])"
    direct          = ~r"\$\d+(?![^,;\s])"
    constant        = ~r"[+-]?\d+(?![^,;\s])"
    junk            = ~r"[^,;\s]+"

    # ─────────────────────────────────────────────────────────────
    # Lexical
    # ─────────────────────────────────────────────────────────────

    mnemonic        = ~r"[A-Za-z][A-Za-z0-9_]*"
    integer         = ~r"[+-]?\d+"
    comment         = ~r";.*"
    ws              = ~r"[ \t]+"
    _               = ~r"\s*"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2: RAW STATEMENTS
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RawOperand:
    """An operand token; ``operand`` is ``None`` when the token is malformed."""
    text: str
    column: int
    operand: Optional[Operand]


@dataclass(frozen=True)
class RawInstruction:
    mnemonic: str
    column: int
    operands: Tuple[RawOperand, ...] = ()


@dataclass(frozen=True)
class OffsetDirective:
    value: int
    column: int


RawStatement = Union[RawInstruction, OffsetDirective]


class LineSyntaxError(ValueError):
    """The line does not match the grammar at all."""

    def __init__(self, message: str, column: int) -> None:
        super().__init__(message)
        self.column = column


# ═══════════════════════════════════════════════════════════════════
#  PART 3: VISITOR (Parse Tree → raw statement)
# ═══════════════════════════════════════════════════════════════════

class LineVisitor(NodeVisitor):
    """Transforms the Parsimonious parse tree of one line."""

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit_line(self, node, visited_children):
        _, statement, _, _ = visited_children
        if isinstance(statement, list):
            return statement[0]
        return None

    def visit_statement(self, node, visited_children):
        return visited_children[0]

    def visit_directive(self, node, visited_children):
        _, _, value = visited_children
        return OffsetDirective(value=value, column=node.start + 1)

    def visit_instruction(self, node, visited_children):
        mnemonic, operands = visited_children
        return RawInstruction(
            mnemonic=mnemonic,
            column=node.start + 1,
            operands=tuple(operands[0]) if isinstance(operands, list) else (),
        )

    def visit_operand_list(self, node, visited_children):
        _, first, rest = visited_children
        result = [first]
        if isinstance(rest, list):
            result.extend(item[3] for item in rest)
        return result

    def visit_operand(self, node, visited_children):
        return visited_children[0]

    def visit_indirect(self, node, visited_children):
        return RawOperand(node.text, node.start + 1, Indirect(int(node.text[2:])))

    def visit_direct(self, node, visited_children):
        return RawOperand(node.text, node.start + 1, Direct(int(node.text[1:])))

    def visit_constant(self, node, visited_children):
        return RawOperand(node.text, node.start + 1, Constant(int(node.text)))

    def visit_junk(self, node, visited_children):
        return RawOperand(node.text, node.start + 1, None)

    def visit_mnemonic(self, node, visited_children):
        return node.text

    def visit_integer(self, node, visited_children):
        return int(node.text)


_VISITOR = LineVisitor()


def parse_line(text: str) -> Optional[RawStatement]:
    """
    Match a single source line.

    Returns ``None`` for blank and comment-only lines. Raises
    :class:`LineSyntaxError` when the line cannot be matched.
    """
    try:
        tree = LINE_GRAMMAR.parse(text)
    except ParseError as exc:
        fragment = text[exc.pos:].strip() or text.strip()
        raise LineSyntaxError(f"Cannot parse '{fragment}'", exc.pos + 1) from exc
    return _VISITOR.visit(tree)


__all__ = [
    "LINE_GRAMMAR",
    "RawOperand",
    "RawInstruction",
    "OffsetDirective",
    "RawStatement",
    "LineSyntaxError",
    "LineVisitor",
    "parse_line",
]
