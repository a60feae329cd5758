# tests/test_errors.py
"""
Tests for the error taxonomy: codes, kinds, locations and formatting.
"""

import json

import pytest

from lodaengine.errors import (
    KIND_ARITHMETIC,
    KIND_GRAPH,
    KIND_RESOURCE,
    KIND_STRUCTURAL,
    CycleError,
    CyclicDependencyError,
    DivisionByZeroError,
    DomainError,
    ErrorCode,
    ErrorPhase,
    EvalError,
    GraphError,
    InternalError,
    LodaError,
    LodaErrorCodes,
    LoopRangeLengthError,
    MagnitudeLimitExceededError,
    MalformedOperandError,
    NonTerminatingError,
    OperandCountError,
    ParseFailure,
    RegisterAddressError,
    SourceSpan,
    UnbalancedLoopError,
    UnknownMnemonicError,
    UnresolvedDependencyError,
)


class TestErrorCodes:

    def test_code_string(self):
        assert LodaErrorCodes.UNKNOWN_MNEMONIC.code == "LODA-1001"
        assert str(LodaErrorCodes.NON_TERMINATING) == "LODA-5005"

    def test_equality_with_string(self):
        assert LodaErrorCodes.DIVISION_BY_ZERO == "LODA-5001"
        assert LodaErrorCodes.DIVISION_BY_ZERO != "LODA-5002"

    def test_hashable(self):
        codes = {LodaErrorCodes.UNBALANCED_LOOP, LodaErrorCodes.UNBALANCED_LOOP}
        assert len(codes) == 1

    def test_phase(self):
        assert LodaErrorCodes.CIRCULAR_DEPENDENCY.phase is ErrorPhase.GRAPH
        assert LodaErrorCodes.MAGNITUDE_LIMIT.phase is ErrorPhase.RUNTIME
        assert isinstance(LodaErrorCodes.INTERNAL_ERROR, ErrorCode)


class TestSourceSpan:

    def test_unknown(self):
        assert str(SourceSpan()) == "<unknown location>"

    def test_file_line_column(self):
        assert str(SourceSpan("A000045.asm", 4, 7)) == "A000045.asm:4:7"

    def test_column_omitted_when_zero(self):
        assert str(SourceSpan("x.asm", 3)) == "x.asm:3"


class TestHierarchy:

    @pytest.mark.parametrize("exc, base, kind", [
        (UnknownMnemonicError("foo"), ParseFailure, KIND_STRUCTURAL),
        (OperandCountError("add", "2", 1), ParseFailure, KIND_STRUCTURAL),
        (MalformedOperandError("bad"), ParseFailure, KIND_STRUCTURAL),
        (UnbalancedLoopError("open"), ParseFailure, KIND_STRUCTURAL),
        (DivisionByZeroError(), EvalError, KIND_ARITHMETIC),
        (MagnitudeLimitExceededError(80, 64), EvalError, KIND_ARITHMETIC),
        (DomainError("log of 0"), EvalError, KIND_ARITHMETIC),
        (RegisterAddressError(-1, 100), EvalError, KIND_ARITHMETIC),
        (NonTerminatingError("spin"), EvalError, KIND_RESOURCE),
        (LoopRangeLengthError(300, 255), EvalError, KIND_RESOURCE),
        (UnresolvedDependencyError(45), GraphError, KIND_GRAPH),
        (CyclicDependencyError([1, 2, 1]), GraphError, KIND_GRAPH),
    ])
    def test_kind(self, exc, base, kind):
        assert isinstance(exc, base)
        assert isinstance(exc, LodaError)
        assert exc.kind == kind

    def test_eval_errors_are_not_permanent(self):
        assert not DivisionByZeroError().is_permanent
        assert UnknownMnemonicError("foo").is_permanent
        assert CyclicDependencyError([1, 1]).is_permanent

    def test_cycle_alias(self):
        assert CycleError is CyclicDependencyError


class TestMessages:

    def test_operand_count(self):
        exc = OperandCountError("lpb", "1-2", 3)
        assert exc.message == "'lpb' expects 1-2 operand(s), found 3"
        assert exc.found == 3

    def test_magnitude_without_limit(self):
        exc = MagnitudeLimitExceededError(40, None)
        assert "too large" in exc.message
        assert exc.limit is None

    def test_register_address(self):
        exc = RegisterAddressError(12_000, 10_000)
        assert exc.message == "Register address 12000 is outside 0..9999"
        assert exc.address == 12_000

    def test_unresolved_dependency(self):
        exc = UnresolvedDependencyError(45, referenced_by=1000)
        assert exc.message == "Program 45 not found (called by program 1000)"
        assert exc.program_id == 45
        assert exc.referenced_by == 1000

    def test_cycle_path(self):
        exc = CyclicDependencyError([1, 2, 3, 1])
        assert exc.cycle == [1, 2, 3, 1]
        assert "1 -> 2 -> 3 -> 1" in exc.message

    def test_internal_prefix(self):
        assert InternalError("oops").message == "Internal error: oops"

    def test_non_terminating_steps(self):
        assert NonTerminatingError("budget", steps=101).steps == 101

    def test_str_with_location(self):
        exc = UnknownMnemonicError("foo", SourceSpan("a.asm", 2, 1))
        assert str(exc) == "a.asm:2:1: Unknown mnemonic 'foo' [LODA-1001]"

    def test_str_without_location(self):
        assert str(DivisionByZeroError()) == "Division by zero [LODA-5001]"

    def test_loop_range_length(self):
        exc = LoopRangeLengthError(2**80, 255)
        assert exc.message == f"Loop range length {2**80} exceeds the limit of 255"
        assert exc.code == "LODA-5006"
        assert not exc.is_permanent


class TestLocation:

    def test_with_location(self):
        exc = DivisionByZeroError().with_location(
            SourceSpan("A001234.asm", 2), "div $1,0", program_id=1234
        )
        assert exc.is_located
        assert str(exc) == "A001234.asm:2: Division by zero [LODA-5001]"
        assert exc.error_message.source_line == "div $1,0"
        assert exc.error_message.context["program_id"] == 1234

    def test_first_location_wins(self):
        exc = DomainError("log of 0").with_location(SourceSpan("A000001.asm", 3), "log $0,2", 1)
        exc.with_location(SourceSpan("A000002.asm", 7), "seq $0,1", 2)
        assert exc.span == SourceSpan("A000001.asm", 3)
        assert exc.error_message.context["program_id"] == 1

    def test_existing_program_id_kept(self):
        exc = NonTerminatingError("budget", program_id=7)
        exc.with_location(SourceSpan("<input>", 1), "add $1,1", program_id=8)
        assert exc.error_message.context["program_id"] == 7


class TestFormatting:

    def test_gcc_format_with_caret(self):
        exc = MalformedOperandError(
            "Cannot parse '$x'",
            SourceSpan("p.asm", 3, 9),
            source_line="mov $1,$x",
        )
        lines = exc.to_gcc_format().splitlines()
        assert lines[0] == "p.asm:3:9: error: Cannot parse '$x' [LODA-1003]"
        assert lines[1] == "    mov $1,$x"
        assert lines[2] == "    " + " " * 8 + "^"

    def test_gcc_format_hint(self):
        exc = UnbalancedLoopError("lpe without lpb").with_hint("remove the lpe")
        assert exc.to_gcc_format().endswith("hint: remove the lpe")

    def test_json(self):
        exc = UnresolvedDependencyError(45, span=SourceSpan("b.asm", 1, 0))
        data = exc.to_json()
        assert data["code"] == "LODA-3001"
        assert data["phase"] == "graph"
        assert data["category"] == "UNRESOLVED_DEPENDENCY"
        assert data["kind"] == KIND_GRAPH
        assert data["location"] == {"file": "b.asm", "line": 1, "column": 0}
        assert data["context"]["program_id"] == 45
        json.dumps(data)
