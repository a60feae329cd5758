# lodaengine/runtime.py
"""
Runtime session façade.

A :class:`LodaRuntime` owns everything one evaluation session shares: the
program store, a memo of parsed programs, the dependency resolver, the
single-flight evaluation cache and the virtual machine. Calls between
programs are served through the cache, so a callee is evaluated at most
once per input for the lifetime of the session, even across threads.

Usage::

    from lodaengine.runtime import create_runtime

    rt = create_runtime(programs_dir="loda-programs/oeis")
    rt.evaluate_range(rt.load_program(45), 0, 10)
    rt.step_cost(rt.load_program(40), 20)

One-shot helpers (:func:`evaluate`, :func:`evaluate_range`, ...) build a
throwaway session when no runtime is passed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Union

from lodaengine.cache import CacheEntry, EvaluationCache
from lodaengine.callgraph import (
    CallGraph,
    DependencyResolver,
    build_callgraph,
    program_name,
)
from lodaengine.callgraph import direct_dependencies as _direct_dependencies
from lodaengine.config import LoopPolicy, RuntimeConfig
from lodaengine.errors import LodaError, UnresolvedDependencyError
from lodaengine.parser import parse
from lodaengine.program import Program
from lodaengine.store import DirectoryProgramStore, MemoryProgramStore, ProgramStore
from lodaengine.vm import ExecutionResult, VirtualMachine

logger = logging.getLogger(__name__)

ProgramLike = Union[Program, str, int]


@dataclass(frozen=True)
class ComparisonResult:
    """Outcome of :meth:`LodaRuntime.compare_programs`."""
    candidate_wins: bool
    installed_steps: Optional[int]
    candidate_steps: Optional[int]
    terms_match: bool
    reason: str

    @property
    def winner(self) -> str:
        return "candidate" if self.candidate_wins else "installed"


# ===================================================================== #
#  LodaRuntime: top-level façade                                         #
# ===================================================================== #

class LodaRuntime:
    """
    One evaluation session.

    Owns and wires together:
    - a ``ProgramStore`` for program texts
    - a memo of parsed programs
    - a ``DependencyResolver`` for the pre-flight dependency check
    - an ``EvaluationCache`` for callee results
    - a ``VirtualMachine`` whose call handler goes through the cache
    """

    def __init__(
        self,
        store: Optional[ProgramStore] = None,
        config: Optional[RuntimeConfig] = None,
    ) -> None:
        self._config = config or RuntimeConfig()
        self._store = store if store is not None else MemoryProgramStore()

        warnings = self._config.validate()
        for w in warnings:
            logger.warning("RuntimeConfig: %s", w)

        self._programs: Dict[int, Program] = {}
        self._programs_lock = threading.Lock()
        self._resolver = DependencyResolver(self.load_program_or_none)
        self._cache = EvaluationCache()
        self._vm = VirtualMachine(self._config, call_handler=self._call)

        logger.info(
            "Runtime session created (step budget %d, loop policy %s)",
            self._config.step_budget,
            self._config.loop_policy.value,
        )

    # -- Program loading -------------------------------------------------
    def load_program_or_none(self, program_id: int) -> Optional[Program]:
        """Parsed program for *program_id*, or ``None`` if the store lacks it."""
        with self._programs_lock:
            program = self._programs.get(program_id)
        if program is not None:
            return program
        text = self._store.load(program_id)
        if text is None:
            return None
        program = parse(
            text,
            program_id=program_id,
            filename=f"{program_name(program_id)}.asm",
        )
        with self._programs_lock:
            return self._programs.setdefault(program_id, program)

    def load_program(self, program_id: int) -> Program:
        program = self.load_program_or_none(program_id)
        if program is None:
            raise UnresolvedDependencyError(program_id)
        return program

    def _coerce(self, program: ProgramLike) -> Program:
        if isinstance(program, Program):
            return program
        if isinstance(program, int):
            return self.load_program(program)
        return parse(program)

    # -- Calls -----------------------------------------------------------
    def _call(self, program_id: int, value: int) -> ExecutionResult:
        entry = self._cache.get_or_compute(
            (program_id, value),
            lambda: self._compute(program_id, value),
        )
        return ExecutionResult(entry.value, entry.steps)

    def _compute(self, program_id: int, value: int) -> CacheEntry:
        program = self.load_program(program_id)
        self._resolver.transitive_dependencies(program_id)
        result = self._vm.run(program, value)
        return CacheEntry(result.value, result.steps)

    # -- Evaluation entry points -----------------------------------------
    def preflight(self, program: ProgramLike) -> FrozenSet[int]:
        """
        Resolve every dependency of *program* before running it.

        Raises ``UnresolvedDependencyError`` for a missing callee and
        ``CyclicDependencyError`` when the program can reach itself.
        """
        return self._resolver.dependencies_of(self._coerce(program))

    def evaluate_with_steps(self, program: ProgramLike, value: int) -> ExecutionResult:
        program = self._coerce(program)
        self.preflight(program)
        return self._vm.run(program, value)

    def evaluate(self, program: ProgramLike, value: int) -> int:
        return self.evaluate_with_steps(program, value).value

    def evaluate_range(self, program: ProgramLike, start: int, count: int) -> List[int]:
        """Terms for inputs ``start .. start+count-1``; the first error propagates."""
        program = self._coerce(program)
        self.preflight(program)
        return [self._vm.run(program, n).value for n in range(start, start + count)]

    def step_cost(self, program: ProgramLike, term_count: int) -> int:
        """Total steps for the first *term_count* terms, starting at the offset."""
        results = self._run_terms(self._coerce(program), term_count)
        return sum(r.steps for r in results)

    def _run_terms(self, program: Program, term_count: int) -> List[ExecutionResult]:
        self.preflight(program)
        start = program.offset
        return [self._vm.run(program, n) for n in range(start, start + term_count)]

    def compare_programs(
        self,
        installed: ProgramLike,
        candidate: ProgramLike,
        term_count: int,
    ) -> ComparisonResult:
        """
        Decide whether *candidate* should replace *installed*.

        The program with the lower total step cost over *term_count* terms
        wins; a tie keeps the installed program and a failing candidate
        always loses.
        """
        installed = self._coerce(installed)
        candidate = self._coerce(candidate)

        try:
            candidate_results = self._run_terms(candidate, term_count)
        except LodaError as exc:
            logger.info("Candidate rejected: %s", exc)
            return ComparisonResult(False, None, None, False, f"candidate failed: {exc}")
        candidate_steps = sum(r.steps for r in candidate_results)

        try:
            installed_results = self._run_terms(installed, term_count)
        except LodaError as exc:
            logger.info("Installed program failed, candidate wins: %s", exc)
            return ComparisonResult(
                True, None, candidate_steps, False, f"installed failed: {exc}"
            )
        installed_steps = sum(r.steps for r in installed_results)
        terms_match = [r.value for r in installed_results] == [
            r.value for r in candidate_results
        ]

        if candidate_steps < installed_steps:
            result = ComparisonResult(
                True, installed_steps, candidate_steps, terms_match, "candidate is faster"
            )
        elif candidate_steps == installed_steps:
            result = ComparisonResult(
                False, installed_steps, candidate_steps, terms_match, "tie"
            )
        else:
            result = ComparisonResult(
                False, installed_steps, candidate_steps, terms_match, "installed is faster"
            )
        logger.info(
            "Compared programs: installed %d steps, candidate %d steps -> %s",
            installed_steps,
            candidate_steps,
            result.winner,
        )
        return result

    # -- Dependencies ----------------------------------------------------
    def direct_dependencies(self, program: ProgramLike) -> Set[int]:
        return _direct_dependencies(self._coerce(program))

    def transitive_dependencies(self, program: ProgramLike) -> FrozenSet[int]:
        if isinstance(program, int):
            return self._resolver.transitive_dependencies(program)
        return self._resolver.dependencies_of(self._coerce(program))

    def call_graph(self, program_ids: Iterable[int]) -> CallGraph:
        return build_callgraph(program_ids, self.load_program_or_none)

    # -- Accessors -------------------------------------------------------
    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def store(self) -> ProgramStore:
        return self._store

    @property
    def cache(self) -> EvaluationCache:
        return self._cache

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    @property
    def vm(self) -> VirtualMachine:
        return self._vm


# ===================================================================== #
#  Module-level convenience                                              #
# ===================================================================== #

def create_runtime(
    store: Optional[ProgramStore] = None,
    *,
    programs_dir: Optional[Union[str, Path]] = None,
    step_budget: int = 5_000_000,
    loop_policy: LoopPolicy = LoopPolicy.GUARDED,
    max_loop_iterations: Optional[int] = None,
    max_value_bits: Optional[int] = None,
) -> LodaRuntime:
    """
    Convenience factory that builds a fully-wired ``LodaRuntime``
    from a store (or a programs directory) and common options.
    """
    if store is None and programs_dir is not None:
        store = DirectoryProgramStore(programs_dir)
    config = RuntimeConfig(
        step_budget=step_budget,
        loop_policy=loop_policy,
        max_loop_iterations=max_loop_iterations,
        max_value_bits=max_value_bits,
    )
    return LodaRuntime(store, config)


def _session(
    runtime: Optional[LodaRuntime],
    store: Optional[ProgramStore],
) -> LodaRuntime:
    return runtime if runtime is not None else LodaRuntime(store)


def evaluate(
    program: ProgramLike,
    value: int,
    *,
    runtime: Optional[LodaRuntime] = None,
    store: Optional[ProgramStore] = None,
) -> int:
    return _session(runtime, store).evaluate(program, value)


def evaluate_range(
    program: ProgramLike,
    start: int,
    count: int,
    *,
    runtime: Optional[LodaRuntime] = None,
    store: Optional[ProgramStore] = None,
) -> List[int]:
    return _session(runtime, store).evaluate_range(program, start, count)


def step_cost(
    program: ProgramLike,
    term_count: int,
    *,
    runtime: Optional[LodaRuntime] = None,
    store: Optional[ProgramStore] = None,
) -> int:
    return _session(runtime, store).step_cost(program, term_count)


def direct_dependencies(program: Program) -> Set[int]:
    return _direct_dependencies(program)


def transitive_dependencies(
    program: ProgramLike,
    *,
    runtime: Optional[LodaRuntime] = None,
    store: Optional[ProgramStore] = None,
) -> FrozenSet[int]:
    return _session(runtime, store).transitive_dependencies(program)


__all__ = [
    "LoopPolicy",
    "RuntimeConfig",
    "ComparisonResult",
    "LodaRuntime",
    "create_runtime",
    "parse",
    "evaluate",
    "evaluate_range",
    "step_cost",
    "direct_dependencies",
    "transitive_dependencies",
]
