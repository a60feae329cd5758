# lodaengine/program.py
"""
Program data model.

A program is an immutable tree: a tuple of nodes, where a node is either a
plain :class:`Instruction` or a :class:`Loop` that owns its nested body.
Operand kinds (constant, direct register, indirect register) are fixed when
the program is parsed and never reinterpreted.

Public API
----------
    Opcode          - every mnemonic of the language
    Constant        - immediate operand ``5`` / ``-3``
    Direct          - register operand ``$N``
    Indirect        - register-addressed-by-register operand ``$$N``
    Instruction     - opcode plus operands
    Loop            - ``lpb``/``lpe`` region with its body
    Program         - top level node list, offset and optional id
    program_from_sexp - rebuild a program from :meth:`Program.to_sexp` output
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple, Union

import sexpdata
from sexpdata import Symbol


# ═══════════════════════════════════════════════════════════════════════
#  Opcodes
# ═══════════════════════════════════════════════════════════════════════

class Opcode(enum.Enum):
    """Instruction mnemonics."""
    MOV = "mov"
    ADD = "add"
    SUB = "sub"
    TRN = "trn"
    MUL = "mul"
    DIV = "div"
    DIF = "dif"
    DIR = "dir"
    MOD = "mod"
    POW = "pow"
    GCD = "gcd"
    BIN = "bin"
    CMP = "cmp"
    EQU = "equ"
    NEQ = "neq"
    LEQ = "leq"
    GEQ = "geq"
    MIN = "min"
    MAX = "max"
    BAN = "ban"
    BOR = "bor"
    BXO = "bxo"
    LOG = "log"
    NRT = "nrt"
    DGS = "dgs"
    DGR = "dgr"
    CLR = "clr"
    SEQ = "seq"
    CAL = "cal"
    LPB = "lpb"
    LPE = "lpe"

    @classmethod
    def from_mnemonic(cls, mnemonic: str) -> Optional["Opcode"]:
        return _MNEMONICS.get(mnemonic)

    @property
    def is_call(self) -> bool:
        return self in CALL_OPCODES

    @property
    def is_arithmetic(self) -> bool:
        return self not in _NON_ARITHMETIC


_MNEMONICS: Dict[str, Opcode] = {op.value: op for op in Opcode}

CALL_OPCODES: FrozenSet[Opcode] = frozenset({Opcode.SEQ, Opcode.CAL})

_NON_ARITHMETIC: FrozenSet[Opcode] = frozenset(
    {Opcode.CLR, Opcode.SEQ, Opcode.CAL, Opcode.LPB, Opcode.LPE}
)

# Longest loop range, constant or held in a register.
MAX_LOOP_RANGE = 255
# Deepest accepted loop nesting.
MAX_LOOP_DEPTH = 255


# ═══════════════════════════════════════════════════════════════════════
#  Operands
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Constant:
    """Immediate integer operand."""
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True)
class Direct:
    """Register reference ``$N``."""
    index: int

    def __str__(self) -> str:
        return f"${self.index}"


@dataclass(frozen=True, slots=True)
class Indirect:
    """Register whose index is stored in register ``N`` (``$$N``)."""
    index: int

    def __str__(self) -> str:
        return f"$${self.index}"


Operand = Union[Constant, Direct, Indirect]

_OPERAND_TAGS = {Constant: "const", Direct: "reg", Indirect: "ind"}
_OPERAND_TYPES = {tag: cls for cls, tag in _OPERAND_TAGS.items()}


def is_register(operand: Operand) -> bool:
    return isinstance(operand, (Direct, Indirect))


# ═══════════════════════════════════════════════════════════════════════
#  Nodes
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Instruction:
    """A single non-loop instruction."""
    opcode: Opcode
    operands: Tuple[Operand, ...] = ()
    line: int = field(default=0, compare=False)

    @property
    def target(self) -> Operand:
        return self.operands[0]

    @property
    def source(self) -> Operand:
        return self.operands[1]

    @property
    def callee_id(self) -> Optional[int]:
        """Program id named by a call instruction, else ``None``."""
        if self.opcode.is_call and isinstance(self.operands[1], Constant):
            return self.operands[1].value
        return None

    def __str__(self) -> str:
        if not self.operands:
            return self.opcode.value
        return f"{self.opcode.value} " + ",".join(str(op) for op in self.operands)


@dataclass(frozen=True)
class Loop:
    """``lpb target,length`` … ``lpe`` region."""
    target: Operand
    length: Operand = Constant(1)
    body: Tuple["Node", ...] = ()
    line: int = field(default=0, compare=False)

    def header(self) -> str:
        if self.length == Constant(1):
            return f"lpb {self.target}"
        return f"lpb {self.target},{self.length}"

    def __str__(self) -> str:
        return self.header()


Node = Union[Instruction, Loop]


# ═══════════════════════════════════════════════════════════════════════
#  Program
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Program:
    """
    An immutable parsed program.

    ``offset`` is the index of the first term (``#offset`` directive) and
    ``program_id`` is the external numeric id, if known. The id does not
    take part in equality: two programs are equal when their instruction
    trees and offsets are.
    """
    body: Tuple[Node, ...] = ()
    offset: int = 0
    program_id: Optional[int] = field(default=None, compare=False)

    # -- traversal -----------------------------------------------------------

    def walk(self) -> Iterator[Node]:
        """Pre-order iteration over every node, loops before their bodies."""
        stack: List[Iterator[Node]] = [iter(self.body)]
        while stack:
            node = next(stack[-1], None)
            if node is None:
                stack.pop()
                continue
            yield node
            if isinstance(node, Loop):
                stack.append(iter(node.body))

    def instructions(self) -> Iterator[Instruction]:
        for node in self.walk():
            if isinstance(node, Instruction):
                yield node

    def instruction_count(self) -> int:
        """Number of source instructions, counting ``lpb`` and ``lpe``."""
        count = 0
        for node in self.walk():
            count += 2 if isinstance(node, Loop) else 1
        return count

    def call_targets(self) -> List[int]:
        """Callee ids in source order (duplicates kept)."""
        return [
            instr.callee_id
            for instr in self.instructions()
            if instr.callee_id is not None
        ]

    def with_id(self, program_id: Optional[int]) -> "Program":
        return replace(self, program_id=program_id)

    # -- serialization -------------------------------------------------------

    def unparse(self) -> str:
        """Canonical assembly text, loop bodies indented by two spaces."""
        lines: List[str] = []
        if self.offset:
            lines.append(f"#offset {self.offset}")
        _unparse_nodes(self.body, 0, lines)
        return "\n".join(lines) + ("\n" if lines else "")

    def to_sexp(self) -> str:
        return sexpdata.dumps(self._sexp_form())

    def _sexp_form(self) -> list:
        form: list = [Symbol("program"), [Symbol("offset"), self.offset]]
        if self.program_id is not None:
            form.append([Symbol("id"), self.program_id])
        form.extend(_node_sexp(node) for node in self.body)
        return form

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.program_id,
            "offset": self.offset,
            "body": [_node_dict(node) for node in self.body],
        }

    def __str__(self) -> str:
        return self.unparse()


def _unparse_nodes(nodes: Tuple[Node, ...], depth: int, lines: List[str]) -> None:
    indent = "  " * depth
    for node in nodes:
        if isinstance(node, Loop):
            lines.append(indent + node.header())
            _unparse_nodes(node.body, depth + 1, lines)
            lines.append(indent + "lpe")
        else:
            lines.append(indent + str(node))


def _operand_sexp(operand: Operand) -> list:
    tag = _OPERAND_TAGS[type(operand)]
    value = operand.value if isinstance(operand, Constant) else operand.index
    return [Symbol(tag), value]


def _node_sexp(node: Node) -> list:
    if isinstance(node, Loop):
        form: list = [Symbol("lpb"), _operand_sexp(node.target), _operand_sexp(node.length)]
        form.extend(_node_sexp(child) for child in node.body)
        return form
    return [Symbol(node.opcode.value)] + [_operand_sexp(op) for op in node.operands]


def _node_dict(node: Node) -> Dict[str, Any]:
    if isinstance(node, Loop):
        return {
            "op": "lpb",
            "target": str(node.target),
            "length": str(node.length),
            "body": [_node_dict(child) for child in node.body],
        }
    return {"op": node.opcode.value, "operands": [str(op) for op in node.operands]}


# ═══════════════════════════════════════════════════════════════════════
#  S-expression loading
# ═══════════════════════════════════════════════════════════════════════

class SexpFormatError(ValueError):
    """The S-expression does not describe a program."""


def _sym_name(s: Any) -> str:
    if isinstance(s, Symbol):
        return str(s)
    raise SexpFormatError(f"Expected symbol, got {type(s).__name__}: {s!r}")


def _operand_from_sexp(form: Any) -> Operand:
    if not isinstance(form, list) or len(form) != 2 or not isinstance(form[1], int):
        raise SexpFormatError(f"Malformed operand: {form!r}")
    cls = _OPERAND_TYPES.get(_sym_name(form[0]))
    if cls is None:
        raise SexpFormatError(f"Unknown operand tag: {form[0]!r}")
    return cls(form[1])


def _node_from_sexp(form: Any) -> Node:
    if not isinstance(form, list) or not form:
        raise SexpFormatError(f"Expected node list, got {form!r}")
    head = _sym_name(form[0])
    if head == "lpb":
        if len(form) < 3:
            raise SexpFormatError("lpb form needs target and length")
        return Loop(
            target=_operand_from_sexp(form[1]),
            length=_operand_from_sexp(form[2]),
            body=tuple(_node_from_sexp(child) for child in form[3:]),
        )
    opcode = Opcode.from_mnemonic(head)
    if opcode is None or opcode in (Opcode.LPB, Opcode.LPE):
        raise SexpFormatError(f"Unknown instruction: {head}")
    return Instruction(
        opcode=opcode,
        operands=tuple(_operand_from_sexp(op) for op in form[1:]),
    )


def program_from_sexp(text: str) -> Program:
    """Inverse of :meth:`Program.to_sexp`."""
    form = sexpdata.loads(text)
    if not isinstance(form, list) or not form or _sym_name(form[0]) != "program":
        raise SexpFormatError("Expected (program ...)")
    offset = 0
    program_id: Optional[int] = None
    nodes: List[Node] = []
    for item in form[1:]:
        head = _sym_name(item[0]) if isinstance(item, list) and item else ""
        if head == "offset":
            offset = int(item[1])
        elif head == "id":
            program_id = int(item[1])
        else:
            nodes.append(_node_from_sexp(item))
    return Program(body=tuple(nodes), offset=offset, program_id=program_id)


__all__ = [
    "Opcode",
    "CALL_OPCODES",
    "MAX_LOOP_RANGE",
    "MAX_LOOP_DEPTH",
    "Constant",
    "Direct",
    "Indirect",
    "Operand",
    "is_register",
    "Instruction",
    "Loop",
    "Node",
    "Program",
    "SexpFormatError",
    "program_from_sexp",
]
