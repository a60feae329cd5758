# lodaengine/vm.py
"""
Interpreter for parsed programs.

The machine walks the instruction tree of a :class:`~lodaengine.program.Program`
over a fresh :class:`~lodaengine.registers.RegisterFile`. Register 0 holds
the input on entry and the output on exit. Every executed instruction and
every loop iteration costs one step; a run fails with
:class:`~lodaengine.errors.NonTerminatingError` once the counter exceeds
the configured budget.

Calls (``seq``/``cal``) are delegated to a *call handler*, a callable
``(program_id, input) -> ExecutionResult`` supplied by the runtime. The
callee's steps are charged to the caller once the call returns.

The budget is per run, not per call tree. A callee starts with a fresh
budget of its own and is only checked against the caller's budget after it
has finished, so a chain of ``d`` nested calls may perform up to roughly
``d * step_budget`` steps of work before the outermost run fails. Results
are cached per ``(program_id, input)``, which bounds this to once per
distinct call.

Loop range lengths held in registers are limited to
:data:`~lodaengine.program.MAX_LOOP_RANGE`, so comparing a range costs a
bounded amount of work per iteration.

Errors raised while executing an instruction are tagged with its line,
its text and the program id before they leave the machine.

Usage::

    vm = VirtualMachine(RuntimeConfig(step_budget=10_000))
    result = vm.run(program, 10)
    result.value, result.steps
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from lodaengine.bigint import compute
from lodaengine.config import LoopPolicy, RuntimeConfig
from lodaengine.callgraph import program_name
from lodaengine.errors import (
    DomainError,
    EvalError,
    InternalError,
    LoopRangeLengthError,
    NonTerminatingError,
    SourceSpan,
    UnresolvedDependencyError,
)
from lodaengine.program import (
    MAX_LOOP_RANGE,
    Constant,
    Direct,
    Indirect,
    Instruction,
    Loop,
    Node,
    Opcode,
    Operand,
    Program,
)
from lodaengine.registers import RegisterFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """Output of one run: the value of register 0 and the steps spent."""
    value: int
    steps: int


CallHandler = Callable[[int, int], ExecutionResult]


# ===================================================================== #
#  Execution state                                                       #
# ===================================================================== #

class _Execution:
    """Register file and step counter of a single run."""

    __slots__ = ("config", "call_handler", "program_id", "registers", "steps")

    def __init__(
        self,
        config: RuntimeConfig,
        call_handler: Optional[CallHandler],
        program_id: Optional[int],
    ) -> None:
        self.config = config
        self.call_handler = call_handler
        self.program_id = program_id
        self.registers = RegisterFile(config.max_register_index)
        self.steps = 0

    # -- Step accounting -------------------------------------------------
    def tick(self, count: int = 1) -> None:
        self.steps += count
        if self.steps > self.config.step_budget:
            raise NonTerminatingError(
                f"Step budget of {self.config.step_budget} exceeded",
                steps=self.steps,
                program_id=self.program_id,
            )

    # -- Operand access --------------------------------------------------
    def address(self, operand: Operand) -> int:
        if isinstance(operand, Direct):
            return self.registers.check_address(operand.index)
        if isinstance(operand, Indirect):
            return self.registers.check_address(self.registers.get(operand.index))
        raise InternalError(f"constant {operand} used as a register address")

    def read(self, operand: Operand) -> int:
        if isinstance(operand, Constant):
            return operand.value
        return self.registers.get(self.address(operand))

    # -- Dispatch --------------------------------------------------------
    def run_block(self, nodes: Sequence[Node]) -> None:
        for node in nodes:
            try:
                if isinstance(node, Loop):
                    self.run_loop(node)
                else:
                    self.execute(node)
            except EvalError as exc:
                exc.with_location(self.span(node), str(node), self.program_id)
                raise

    def span(self, node: Node) -> SourceSpan:
        if self.program_id is None:
            return SourceSpan("<input>", node.line)
        return SourceSpan(f"{program_name(self.program_id)}.asm", node.line)

    def execute(self, instr: Instruction) -> None:
        self.tick()
        opcode = instr.opcode
        target = self.address(instr.target)
        if opcode.is_call:
            self.call(target, instr.callee_id)
        elif opcode is Opcode.CLR:
            self.registers.clear_range(target, self.read(instr.source))
        elif not opcode.is_arithmetic:
            raise InternalError(f"'{instr}' cannot be executed as an instruction")
        else:
            source = self.read(instr.source)
            value = compute(
                opcode,
                self.registers.get(target),
                source,
                self.config.max_value_bits,
            )
            self.registers.set(target, value)

    def call(self, target: int, callee_id: Optional[int]) -> None:
        if callee_id is None:
            raise InternalError("call instruction without a program id")
        argument = self.registers.get(target)
        if argument < 0:
            raise DomainError(
                f"Program {callee_id} called with negative input {argument}",
                program_id=self.program_id,
            )
        if self.call_handler is None:
            raise UnresolvedDependencyError(callee_id, referenced_by=self.program_id)
        result = self.call_handler(callee_id, argument)
        self.registers.set(target, result.value)
        self.tick(result.steps)

    # -- Loops -----------------------------------------------------------
    def run_loop(self, loop: Loop) -> None:
        """
        Repeat the body while the target range keeps decreasing.

        Each iteration snapshots the registers, runs the body and compares
        the range ``[target, target+length)`` against the snapshot. The
        length is read before the first iteration and again after every
        body; the shortest length seen so far is the one compared. When the
        range did not decrease, the snapshot is restored (the step count is
        kept) and the loop ends.
        """
        policy = self.config.loop_policy
        limit = self.config.max_loop_iterations
        shortest = self.range_length(loop)
        iterations = 0
        while True:
            snapshot = self.registers.snapshot()
            self.tick()
            self.run_block(loop.body)

            start = self.address(loop.target)
            length = min(self.range_length(loop), shortest)
            shortest = length

            if self.registers.is_less_range(snapshot, start, length):
                iterations += 1
                if limit is not None and iterations > limit:
                    raise NonTerminatingError(
                        f"Loop at line {loop.line} exceeded {limit} iterations",
                        steps=self.steps,
                        program_id=self.program_id,
                    )
                continue

            if policy is LoopPolicy.GUARDED and self._stalled(snapshot, start, length):
                logger.debug(
                    "Loop at line %d stalled after %d iterations", loop.line, iterations
                )
                raise NonTerminatingError(
                    f"Loop at line {loop.line} made no progress",
                    steps=self.steps,
                    program_id=self.program_id,
                )
            self.registers.restore(snapshot)
            return

    def range_length(self, loop: Loop) -> int:
        """Current range length of *loop*; non-positive values count as 0."""
        length = self.read(loop.length)
        if length <= 0:
            return 0
        if length > MAX_LOOP_RANGE:
            raise LoopRangeLengthError(length, MAX_LOOP_RANGE, program_id=self.program_id)
        return length

    def _stalled(self, snapshot: Dict[int, int], start: int, length: int) -> bool:
        started_positive = any(
            snapshot.get(index, 0) > 0 for index in range(start, start + length)
        )
        return started_positive and not self.registers.has_negative(start, length)


# ===================================================================== #
#  Virtual machine                                                       #
# ===================================================================== #

class VirtualMachine:
    """
    Evaluates programs for single inputs.

    A machine is stateless between runs and may be shared between threads;
    each :meth:`run` gets its own register file and step counter.
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        call_handler: Optional[CallHandler] = None,
    ) -> None:
        self.config = config or RuntimeConfig()
        self.call_handler = call_handler

    def run(self, program: Program, value: int) -> ExecutionResult:
        execution = _Execution(self.config, self.call_handler, program.program_id)
        execution.registers.set(0, value)
        execution.run_block(program.body)
        return ExecutionResult(execution.registers.get(0), execution.steps)


__all__ = [
    "ExecutionResult",
    "CallHandler",
    "LoopPolicy",
    "VirtualMachine",
]
