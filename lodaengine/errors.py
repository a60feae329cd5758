# lodaengine/errors.py
"""
Error Types and Reporting Module

This module provides the error handling infrastructure for the assembly
parser, the virtual machine and the dependency resolver. Every failure the
engine can produce is a subclass of :class:`LodaError` carrying a structured
:class:`ErrorCode` and, where it applies, a :class:`SourceSpan`.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                     │
├─────────────────────────────────────────────────────────────────────────────┤
│  LodaError (base)                                                           │
│  ├── ParseFailure               - Malformed assembly text                   │
│  │   ├── UnknownMnemonicError                                               │
│  │   ├── OperandCountError                                                  │
│  │   ├── MalformedOperandError                                              │
│  │   └── UnbalancedLoopError                                                │
│  ├── EvalError                  - Failures while running a program          │
│  │   ├── DivisionByZeroError                                                │
│  │   ├── MagnitudeLimitExceededError                                        │
│  │   ├── DomainError                                                        │
│  │   ├── RegisterAddressError                                               │
│  │   ├── LoopRangeLengthError                                               │
│  │   └── NonTerminatingError                                                │
│  ├── GraphError                 - Call graph problems                       │
│  │   ├── UnresolvedDependencyError                                          │
│  │   └── CyclicDependencyError                                              │
│  └── InternalError              - Engine bugs (should never happen)         │
└─────────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a unique code of the form LODA-XXXX:
  - 1000-1999: Syntax errors
  - 3000-3999: Dependency graph errors
  - 5000-5999: Runtime errors
  - 9000-9999: Internal errors

Example Usage:
──────────────
    from lodaengine.errors import LodaError, CyclicDependencyError

    try:
        runtime.evaluate(program, 10)
    except CyclicDependencyError as exc:
        log.error("cycle: %s", " -> ".join(map(str, exc.cycle)))
    except LodaError as exc:
        print(exc.to_gcc_format())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto, unique
from typing import Any, Dict, List, Optional, Sequence


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorPhase(Enum):
    """Phase of the engine where the error occurred."""

    SYNTAX = "syntax"          # Parsing
    GRAPH = "graph"            # Dependency resolution
    RUNTIME = "runtime"        # Execution
    INTERNAL = "internal"      # Engine internals


@unique
class ErrorCategory(Enum):
    """
    Fine-grained error categories for filtering and statistics.
    """

    # Syntax categories
    UNKNOWN_MNEMONIC = auto()
    OPERAND_COUNT = auto()
    MALFORMED_OPERAND = auto()
    UNBALANCED_LOOP = auto()

    # Graph categories
    UNRESOLVED_DEPENDENCY = auto()
    CIRCULAR_DEPENDENCY = auto()

    # Runtime categories
    DIVISION_BY_ZERO = auto()
    MAGNITUDE_LIMIT = auto()
    DOMAIN_ERROR = auto()
    REGISTER_ADDRESS = auto()
    LOOP_RANGE = auto()
    TIMEOUT = auto()

    # Internal categories
    INTERNAL_ERROR = auto()


# Taxonomy buckets used by orchestrators to decide what an error means.
KIND_STRUCTURAL = "structural"
KIND_ARITHMETIC = "arithmetic"
KIND_RESOURCE = "resource"
KIND_GRAPH = "graph"
KIND_INTERNAL = "internal"


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured error code of the form PREFIX-NNNN.
    """

    __slots__ = ("prefix", "number", "category", "phase")

    def __init__(
        self,
        prefix: str,
        number: int,
        category: ErrorCategory,
        phase: ErrorPhase,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.category = category
        self.phase = phase

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.category.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class LodaErrorCodes:
    """Predefined error codes."""

    # ═══════════════════════════════════════════════════════════════════════════
    # SYNTAX ERRORS (1000-1999)
    # ═══════════════════════════════════════════════════════════════════════════

    UNKNOWN_MNEMONIC = ErrorCode(
        "LODA", 1001, ErrorCategory.UNKNOWN_MNEMONIC, ErrorPhase.SYNTAX
    )
    OPERAND_COUNT = ErrorCode(
        "LODA", 1002, ErrorCategory.OPERAND_COUNT, ErrorPhase.SYNTAX
    )
    MALFORMED_OPERAND = ErrorCode(
        "LODA", 1003, ErrorCategory.MALFORMED_OPERAND, ErrorPhase.SYNTAX
    )
    UNBALANCED_LOOP = ErrorCode(
        "LODA", 1004, ErrorCategory.UNBALANCED_LOOP, ErrorPhase.SYNTAX
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # GRAPH ERRORS (3000-3999)
    # ═══════════════════════════════════════════════════════════════════════════

    UNRESOLVED_DEPENDENCY = ErrorCode(
        "LODA", 3001, ErrorCategory.UNRESOLVED_DEPENDENCY, ErrorPhase.GRAPH
    )
    CIRCULAR_DEPENDENCY = ErrorCode(
        "LODA", 3002, ErrorCategory.CIRCULAR_DEPENDENCY, ErrorPhase.GRAPH
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # RUNTIME ERRORS (5000-5999)
    # ═══════════════════════════════════════════════════════════════════════════

    DIVISION_BY_ZERO = ErrorCode(
        "LODA", 5001, ErrorCategory.DIVISION_BY_ZERO, ErrorPhase.RUNTIME
    )
    MAGNITUDE_LIMIT = ErrorCode(
        "LODA", 5002, ErrorCategory.MAGNITUDE_LIMIT, ErrorPhase.RUNTIME
    )
    DOMAIN_ERROR = ErrorCode(
        "LODA", 5003, ErrorCategory.DOMAIN_ERROR, ErrorPhase.RUNTIME
    )
    REGISTER_ADDRESS = ErrorCode(
        "LODA", 5004, ErrorCategory.REGISTER_ADDRESS, ErrorPhase.RUNTIME
    )
    NON_TERMINATING = ErrorCode(
        "LODA", 5005, ErrorCategory.TIMEOUT, ErrorPhase.RUNTIME
    )
    LOOP_RANGE_LENGTH = ErrorCode(
        "LODA", 5006, ErrorCategory.LOOP_RANGE, ErrorPhase.RUNTIME
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # INTERNAL ERRORS (9000-9999)
    # ═══════════════════════════════════════════════════════════════════════════

    INTERNAL_ERROR = ErrorCode(
        "LODA", 9001, ErrorCategory.INTERNAL_ERROR, ErrorPhase.INTERNAL
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATION TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A position in an assembly source.

    ``column`` is 1-based; 0 means "whole line".
    """

    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"

        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))

        return ":".join(parts)


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR MESSAGE FORMATTING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ErrorMessage:
    """
    A complete error message with all context.

    This is the internal representation of an error before it is printed
    or serialized.
    """

    code: ErrorCode
    message: str
    span: SourceSpan = field(default_factory=SourceSpan)
    hint: str = ""
    source_line: str = ""  # The offending source line, if available
    context: Dict[str, Any] = field(default_factory=dict)

    def with_hint(self, hint: str) -> "ErrorMessage":
        """Add a hint to this error message."""
        self.hint = hint
        return self

    def with_source(self, line: str) -> "ErrorMessage":
        """Add the source line for display."""
        self.source_line = line
        return self

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        main = f"{self.span}: error: {self.message} [{self.code}]"

        lines = [main]

        if self.source_line:
            lines.append(f"    {self.source_line}")
            if self.span.column > 0:
                lines.append(f"    {' ' * (self.span.column - 1)}^")

        if self.hint:
            lines.append(f"hint: {self.hint}")

        return "\n".join(lines)

    def to_json(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code.code,
            "message": self.message,
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
            },
            "phase": self.code.phase.value,
            "category": self.code.category.name,
            "context": dict(self.context),
            "hint": self.hint,
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class LodaError(Exception):
    """
    Base exception for all engine errors.

    This exception carries structured error information that can be
    logged verbatim or serialized.
    """

    kind: str = KIND_INTERNAL
    is_permanent: bool = True

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        hint: str = "",
        source_line: str = "",
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.error_message = ErrorMessage(
            code=code or LodaErrorCodes.INTERNAL_ERROR,
            message=message,
            span=span or SourceSpan(),
            hint=hint,
            source_line=source_line,
            context=context,
        )

    @property
    def code(self) -> ErrorCode:
        return self.error_message.code

    @property
    def span(self) -> SourceSpan:
        return self.error_message.span

    @property
    def message(self) -> str:
        return self.error_message.message

    def with_hint(self, hint: str) -> "LodaError":
        """Add a hint to this error."""
        self.error_message.with_hint(hint)
        return self

    @property
    def is_located(self) -> bool:
        return self.span.line > 0

    def with_location(
        self,
        span: SourceSpan,
        source_line: str = "",
        program_id: Optional[int] = None,
    ) -> "LodaError":
        """
        Attach the instruction an error was raised at.

        Errors raised below the interpreter (arithmetic, register access)
        know nothing about the program; the VM fills this in on the way
        out. An error that already has a location keeps it.
        """
        if self.is_located:
            return self
        self.error_message.span = span
        self.error_message.with_source(source_line)
        if program_id is not None:
            self.error_message.context.setdefault("program_id", program_id)
        return self

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        return self.error_message.to_gcc_format()

    def to_json(self) -> Dict[str, Any]:
        data = self.error_message.to_json()
        data["kind"] = self.kind
        return data

    def __str__(self) -> str:
        if self.span.line or self.span.file:
            return f"{self.span}: {self.message} [{self.code}]"
        return f"{self.message} [{self.code}]"


# ───────────────────────────────────────────────────────────────────────────────
# SYNTAX ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ParseFailure(LodaError):
    """Assembly text that cannot be turned into a program."""

    kind = KIND_STRUCTURAL

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            code=code or LodaErrorCodes.MALFORMED_OPERAND,
            span=span,
            **kwargs,
        )

    @property
    def line(self) -> int:
        return self.span.line


class UnknownMnemonicError(ParseFailure):
    """The instruction name is not part of the language."""

    def __init__(self, mnemonic: str, span: Optional[SourceSpan] = None, **kwargs: Any) -> None:
        super().__init__(
            f"Unknown mnemonic '{mnemonic}'",
            code=LodaErrorCodes.UNKNOWN_MNEMONIC,
            span=span,
            **kwargs,
        )
        self.mnemonic = mnemonic


class OperandCountError(ParseFailure):
    """Instruction has the wrong number of operands."""

    def __init__(
        self,
        mnemonic: str,
        expected: str,
        found: int,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"'{mnemonic}' expects {expected} operand(s), found {found}",
            code=LodaErrorCodes.OPERAND_COUNT,
            span=span,
            **kwargs,
        )
        self.mnemonic = mnemonic
        self.expected = expected
        self.found = found


class MalformedOperandError(ParseFailure):
    """An operand, or the line as a whole, does not fit the grammar."""

    def __init__(self, message: str, span: Optional[SourceSpan] = None, **kwargs: Any) -> None:
        super().__init__(
            message,
            code=LodaErrorCodes.MALFORMED_OPERAND,
            span=span,
            **kwargs,
        )


class UnbalancedLoopError(ParseFailure):
    """``lpb``/``lpe`` markers do not pair up."""

    def __init__(self, message: str, span: Optional[SourceSpan] = None, **kwargs: Any) -> None:
        super().__init__(
            message,
            code=LodaErrorCodes.UNBALANCED_LOOP,
            span=span,
            **kwargs,
        )


# ───────────────────────────────────────────────────────────────────────────────
# RUNTIME ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class EvalError(LodaError):
    """Failure while evaluating a program for one input."""

    kind = KIND_ARITHMETIC
    is_permanent = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            code=code or LodaErrorCodes.DOMAIN_ERROR,
            span=span,
            **kwargs,
        )


class DivisionByZeroError(EvalError):
    """``div``, ``mod`` or ``pow`` with a zero divisor."""

    def __init__(self, message: str = "Division by zero", **kwargs: Any) -> None:
        super().__init__(message, code=LodaErrorCodes.DIVISION_BY_ZERO, **kwargs)


class MagnitudeLimitExceededError(EvalError):
    """A value grew beyond the configured bit limit."""

    def __init__(self, bits: int, limit: Optional[int], **kwargs: Any) -> None:
        if limit is None:
            message = f"Value of {bits} bits is too large to compute"
        else:
            message = f"Value of {bits} bits exceeds the limit of {limit} bits"
        super().__init__(message, code=LodaErrorCodes.MAGNITUDE_LIMIT, **kwargs)
        self.bits = bits
        self.limit = limit


class DomainError(EvalError):
    """An operation was applied outside of its domain of definition."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, code=LodaErrorCodes.DOMAIN_ERROR, **kwargs)


class RegisterAddressError(EvalError):
    """A register address is negative or beyond the register file capacity."""

    def __init__(self, address: int, capacity: int, **kwargs: Any) -> None:
        super().__init__(
            f"Register address {address} is outside 0..{capacity - 1}",
            code=LodaErrorCodes.REGISTER_ADDRESS,
            **kwargs,
        )
        self.address = address
        self.capacity = capacity


class LoopRangeLengthError(EvalError):
    """A loop range length held in a register is too large to compare."""

    kind = KIND_RESOURCE

    def __init__(self, length: int, limit: int, **kwargs: Any) -> None:
        super().__init__(
            f"Loop range length {length} exceeds the limit of {limit}",
            code=LodaErrorCodes.LOOP_RANGE_LENGTH,
            **kwargs,
        )
        self.length = length
        self.limit = limit


class NonTerminatingError(EvalError):
    """The step budget ran out, or a loop stopped making progress."""

    kind = KIND_RESOURCE

    def __init__(self, message: str, steps: int = 0, **kwargs: Any) -> None:
        super().__init__(message, code=LodaErrorCodes.NON_TERMINATING, **kwargs)
        self.steps = steps


# ───────────────────────────────────────────────────────────────────────────────
# GRAPH ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class GraphError(LodaError):
    """Problem in the static call graph."""

    kind = KIND_GRAPH


class UnresolvedDependencyError(GraphError):
    """The program store has no program with this id."""

    def __init__(
        self,
        program_id: int,
        referenced_by: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        message = f"Program {program_id} not found"
        if referenced_by is not None:
            message += f" (called by program {referenced_by})"
        super().__init__(
            message,
            code=LodaErrorCodes.UNRESOLVED_DEPENDENCY,
            program_id=program_id,
            referenced_by=referenced_by,
            **kwargs,
        )
        self.program_id = program_id
        self.referenced_by = referenced_by


class CyclicDependencyError(GraphError):
    """Circular dependency detected."""

    def __init__(self, cycle: Sequence[int], **kwargs: Any) -> None:
        cycle_str = " -> ".join(str(program_id) for program_id in cycle)
        super().__init__(
            f"Circular dependency detected: {cycle_str}",
            code=LodaErrorCodes.CIRCULAR_DEPENDENCY,
            cycle=list(cycle),
            **kwargs,
        )
        self.cycle: List[int] = list(cycle)


# Alias matching the public API name for the resolver result.
CycleError = CyclicDependencyError


# ───────────────────────────────────────────────────────────────────────────────
# INTERNAL ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class InternalError(LodaError):
    """Engine bug or misuse of an internal API."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            f"Internal error: {message}",
            code=LodaErrorCodes.INTERNAL_ERROR,
            **kwargs,
        )


__all__ = [
    # Classification
    "ErrorPhase",
    "ErrorCategory",
    "ErrorCode",
    "LodaErrorCodes",
    "KIND_STRUCTURAL",
    "KIND_ARITHMETIC",
    "KIND_RESOURCE",
    "KIND_GRAPH",
    "KIND_INTERNAL",
    # Locations / messages
    "SourceSpan",
    "ErrorMessage",
    # Exceptions
    "LodaError",
    "ParseFailure",
    "UnknownMnemonicError",
    "OperandCountError",
    "MalformedOperandError",
    "UnbalancedLoopError",
    "EvalError",
    "DivisionByZeroError",
    "MagnitudeLimitExceededError",
    "DomainError",
    "RegisterAddressError",
    "LoopRangeLengthError",
    "NonTerminatingError",
    "GraphError",
    "UnresolvedDependencyError",
    "CyclicDependencyError",
    "CycleError",
    "InternalError",
]
